"""Tests for result export (pandas) and charts (plotly)."""

import json
import os
import sys

import pandas as pd
import plotly.graph_objects as go
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bondledger.config.loader import load_config
from bondledger.reporting.charts import (
    create_accumulator_chart,
    create_earned_chart,
    create_principal_chart,
    create_reward_share_chart,
)
from bondledger.reporting.export import (
    events_to_frame,
    export_csv,
    export_html_report,
    export_json,
    snapshots_to_frame,
)
from bondledger.simulation.runner import ScenarioRunner
from bondledger.simulation.scenarios import get_scenario


@pytest.fixture(scope="module")
def result():
    return ScenarioRunner(load_config()).run(get_scenario("late_entry"))


class TestFrames:
    def test_snapshot_frame(self, result):
        df = snapshots_to_frame(result)
        assert len(df) == len(result.snapshots)
        for column in ('t_days', 'accumulator', 'total_principal', 'earned_alice', 'earned_bob'):
            assert column in df.columns
        assert list(df['label'])[:2] == ['fund', 't=0']
        assert df['total_principal'].iloc[-1] == 0

    def test_event_frame(self, result):
        df = events_to_frame(result)
        assert len(df) == len(result.events)
        assert df['event'].iloc[0] == 'FundingScheduled'
        assert set(df['event']) >= {'Staked', 'Claimed', 'UnbondStarted', 'Unstaked'}


class TestExport:
    def test_csv(self, result, tmp_path):
        path = tmp_path / "snapshots.csv"
        export_csv(result, str(path))
        df = pd.read_csv(path)
        assert len(df) == len(result.snapshots)

    def test_json_keeps_integers_exact(self, result, tmp_path):
        path = tmp_path / "result.json"
        export_json(result, str(path))
        with open(path) as f:
            data = json.load(f)
        assert int(data['total_rewards']) == result.total_rewards
        assert {d: int(r) for d, r in data['rewards_by_depositor'].items()} == result.rewards_by_depositor
        assert data['config_hash'] == result.config.compute_hash()
        assert len(data['events']) == len(result.events)

    def test_html(self, result, tmp_path):
        path = tmp_path / "report.html"
        export_html_report(result, str(path), [create_reward_share_chart(result)])
        html = path.read_text()
        assert result.scenario.name in html
        assert "Reward Shares" in html


class TestCharts:
    def test_charts_build(self, result):
        unit = result.config.unit
        figures = [
            create_accumulator_chart(result.snapshots),
            create_principal_chart(result.snapshots, unit),
            create_earned_chart(result.snapshots, unit),
            create_reward_share_chart(result),
        ]
        for fig in figures:
            assert isinstance(fig, go.Figure)
            assert len(fig.data) > 0

    def test_share_chart_shows_expected(self, result):
        fig = create_reward_share_chart(result)
        assert [trace.name for trace in fig.data] == ['Actual', 'Expected']
