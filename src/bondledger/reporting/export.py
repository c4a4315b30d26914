"""Export functionality for CSV, JSON, and HTML."""

import json
from dataclasses import asdict
from typing import Any, List

import pandas as pd

from ..simulation.runner import SimulationResult


def snapshots_to_frame(result: SimulationResult) -> pd.DataFrame:
    """One row per ledger snapshot, amounts in whole tokens."""
    unit = result.config.unit
    start = result.snapshots[0].t if result.snapshots else 0
    rows = []
    for snap in result.snapshots:
        row = {
            't': snap.t,
            't_days': (snap.t - start) / 86400,
            'label': snap.label,
            'accumulator': snap.accumulator,
            'reward_rate': snap.reward_rate / unit,
            'total_principal': snap.total_principal / unit,
            'total_boosted_principal': snap.total_boosted_principal / unit,
            'total_rewards_funded': snap.total_rewards_funded / unit,
            'total_rewards_paid': snap.total_rewards_paid / unit,
            'undistributed_rewards': snap.undistributed_rewards / unit,
            'status': snap.status,
        }
        for depositor, earned in snap.earned.items():
            row[f'earned_{depositor}'] = earned / unit
        rows.append(row)
    return pd.DataFrame(rows)


def events_to_frame(result: SimulationResult) -> pd.DataFrame:
    return pd.DataFrame([e.to_dict() for e in result.events])


def export_csv(result: SimulationResult, filepath: str):
    """Export ledger snapshots to CSV."""
    snapshots_to_frame(result).to_csv(filepath, index=False)


def export_json(result: SimulationResult, filepath: str):
    """Export a scenario result to JSON. Integers stay exact."""
    export_data = {
        'config': result.config.to_dict(),
        'config_hash': result.config.compute_hash(),
        'scenario': result.scenario.name,
        'total_rewards': str(result.total_rewards),
        'rewards_by_depositor': {d: str(r) for d, r in result.rewards_by_depositor.items()},
        'reward_shares': result.reward_shares,
        'expected_shares': result.scenario.expected_shares,
        'snapshots': [
            {k: (str(v) if isinstance(v, int) and not isinstance(v, bool) else v)
             for k, v in asdict(snap).items() if k != 'earned'}
            for snap in result.snapshots
        ],
        'events': [
            {k: (str(v) if isinstance(v, int) and not isinstance(v, bool) else v)
             for k, v in e.to_dict().items()}
            for e in result.events
        ],
        'warnings': [asdict(w) for w in result.warnings],
        'final_metrics': result.final_metrics,
    }

    with open(filepath, 'w') as f:
        json.dump(export_data, f, indent=2)


def export_html_report(result: SimulationResult, filepath: str, charts: List[Any] = None):
    """Export HTML report with embedded Plotly charts."""
    chart_html = "".join(
        f'<div class="chart">{fig.to_html(full_html=False, include_plotlyjs=False)}</div>'
        for fig in (charts or [])
    )
    shares = "".join(
        f"<li>{depositor}: {share * 100:.2f}% "
        f"(expected {result.scenario.expected_shares.get(depositor, 0.0) * 100:.2f}%)</li>"
        for depositor, share in sorted(result.reward_shares.items())
    )
    html = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <title>Bonding Program Report</title>
        <script src="https://cdn.plot.ly/plotly-latest.min.js"></script>
        <style>
            body {{ font-family: Arial, sans-serif; margin: 20px; }}
            h1 {{ color: #333; }}
            .metric {{ margin: 10px 0; padding: 10px; background: #f5f5f5; }}
            .chart {{ margin: 20px 0; }}
        </style>
    </head>
    <body>
        <h1>{result.scenario.name}</h1>
        <p>{result.scenario.description}</p>

        <div class="metric">
            <h2>Configuration Hash</h2>
            <p>{result.config.compute_hash()}</p>
        </div>

        <div class="metric">
            <h2>Reward Shares</h2>
            <ul>{shares}</ul>
            <p>Warnings: {len(result.warnings)}</p>
        </div>

        {chart_html}
    </body>
    </html>
    """

    with open(filepath, 'w') as f:
        f.write(html)
