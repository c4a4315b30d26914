"""Chart generation using Plotly."""

from typing import Dict, List

import plotly.graph_objects as go

from ..engine.fixed_point import SCALE
from ..simulation.runner import LedgerSnapshot, SimulationResult

THEME = {
    "text": "#e8eaed",
    "text_secondary": "#9aa0a6",
    "grid": "rgba(30, 33, 36, 0.8)",
    "cyan": "#00d4ff",
    "cyan_fill": "rgba(0, 212, 255, 0.12)",
    "amber": "#ffab00",
    "amber_fill": "rgba(255, 171, 0, 0.12)",
    "red": "#ff5252",
    "green": "#00e676",
}
SERIES_COLORS = [THEME["cyan"], THEME["amber"], THEME["green"], THEME["red"], THEME["text_secondary"]]

ONE_DAY = 86400


def apply_dark_layout(fig: go.Figure, title: str, x_title: str, y_title: str, showlegend: bool = True) -> None:
    """Apply the dark layout shared by every chart."""
    fig.update_layout(
        title={
            "text": title,
            "x": 0,
            "xanchor": "left",
            "font": {"size": 11, "color": THEME["text_secondary"]}
        },
        xaxis_title=x_title,
        yaxis_title=y_title,
        hovermode="x unified",
        template="plotly_dark",
        height=340,
        margin=dict(l=50, r=20, t=40, b=40),
        showlegend=showlegend,
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="left", x=0),
        plot_bgcolor="rgba(8, 9, 10, 1)",
        paper_bgcolor="rgba(8, 9, 10, 1)",
        font={"color": THEME["text"], "size": 11},
        xaxis=dict(gridcolor=THEME["grid"], zerolinecolor=THEME["grid"]),
        yaxis=dict(gridcolor=THEME["grid"], zerolinecolor=THEME["grid"])
    )


def _days(snapshots: List[LedgerSnapshot]) -> List[float]:
    start = snapshots[0].t
    return [(s.t - start) / ONE_DAY for s in snapshots]


def create_accumulator_chart(snapshots: List[LedgerSnapshot]) -> go.Figure:
    """Reward per boosted unit over time."""
    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=_days(snapshots),
        y=[s.accumulator / SCALE for s in snapshots],
        name='Reward per boosted unit',
        mode='lines+markers',
        line=dict(color=THEME["cyan"], width=2, shape='linear'),
        text=[s.label for s in snapshots],
    ))
    apply_dark_layout(fig, "Reward Accumulator", "Time (days)", "Reward per boosted unit", showlegend=False)
    return fig


def create_principal_chart(snapshots: List[LedgerSnapshot], unit: int) -> go.Figure:
    """Principal and boosted principal over time."""
    days = _days(snapshots)
    fig = go.Figure()
    fig.add_trace(go.Scatter(
        x=days,
        y=[s.total_boosted_principal / unit for s in snapshots],
        name='Boosted',
        mode='lines',
        line=dict(color=THEME["amber"], width=2, shape='hv'),
        fill='tozeroy',
        fillcolor=THEME["amber_fill"]
    ))
    fig.add_trace(go.Scatter(
        x=days,
        y=[s.total_principal / unit for s in snapshots],
        name='Principal',
        mode='lines',
        line=dict(color=THEME["cyan"], width=2, shape='hv'),
        fill='tozeroy',
        fillcolor=THEME["cyan_fill"]
    ))
    apply_dark_layout(fig, "Staked Principal", "Time (days)", "Tokens")
    return fig


def create_earned_chart(snapshots: List[LedgerSnapshot], unit: int) -> go.Figure:
    """Cumulative claimable reward per depositor over time."""
    days = _days(snapshots)
    depositors = sorted(snapshots[-1].earned) if snapshots else []
    fig = go.Figure()
    for i, depositor in enumerate(depositors):
        fig.add_trace(go.Scatter(
            x=days,
            y=[s.earned.get(depositor, 0) / unit for s in snapshots],
            name=depositor,
            mode='lines',
            line=dict(color=SERIES_COLORS[i % len(SERIES_COLORS)], width=2)
        ))
    apply_dark_layout(fig, "Unclaimed Reward", "Time (days)", "Tokens")
    return fig


def create_reward_share_chart(result: SimulationResult) -> go.Figure:
    """Actual against expected reward share per depositor."""
    actual: Dict[str, float] = result.reward_shares
    expected = result.scenario.expected_shares
    depositors = sorted(actual)

    fig = go.Figure()
    fig.add_trace(go.Bar(
        x=depositors,
        y=[actual[d] * 100 for d in depositors],
        name='Actual',
        marker_color=THEME["cyan"]
    ))
    if expected:
        fig.add_trace(go.Bar(
            x=depositors,
            y=[expected.get(d, 0.0) * 100 for d in depositors],
            name='Expected',
            marker_color=THEME["amber"]
        ))
    fig.update_layout(barmode='group')
    apply_dark_layout(fig, f"Reward Share - {result.scenario.name}", "Depositor", "Share of rewards (%)")
    return fig
