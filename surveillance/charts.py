from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import altair as alt
import pandas as pd

from surveillance.data import ALL, SEVERITY_COLORS, SEVERITY_ORDER
from surveillance.metrics import cases_by_country, severity_share, timeline

alt.data_transformers.disable_max_rows()

ACCENT = "#C227F5"

# Name of the point selection on the severity chart; UIs read clicks back from it.
SEVERITY_SELECTION = "severity_pick"

_severity_scale = alt.Scale(domain=SEVERITY_ORDER, range=[SEVERITY_COLORS[s] for s in SEVERITY_ORDER])


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def country_bar_chart(final_df: pd.DataFrame) -> alt.Chart:
    src = cases_by_country(final_df)
    order = src.drop_duplicates("country")["country"].tolist()
    return (
        alt.Chart(src, title="Cases by country (stacked)")
        .mark_bar()
        .encode(
            x=alt.X("country:N", title=None, sort=order or "ascending"),
            y=alt.Y("cases:Q", title="Cases", axis=alt.Axis(format="~s")),
            color=alt.Color("severity:N", scale=_severity_scale, legend=None),
            order=alt.Order("severity_rank:Q"),
            tooltip=["country", "severity", alt.Tooltip("cases:Q", title="Cases", format=",")],
        )
    )


def severity_pie_chart(final_df: pd.DataFrame, selected: str = "All") -> alt.Chart:
    src = severity_share(final_df)
    # toggle="true": a second click on the picked slice empties the selection
    pick = alt.selection_point(name=SEVERITY_SELECTION, fields=["severity"], on="click", toggle="true", empty=True)
    highlight = alt.condition(pick, alt.value(1.0), alt.value(0.35))
    if selected in SEVERITY_ORDER:
        highlight = alt.condition(alt.datum.severity == selected, alt.value(1.0), alt.value(0.35))
    return (
        alt.Chart(src, title="Severity share")
        .mark_arc(innerRadius=50)
        .encode(
            theta=alt.Theta("cases:Q"),
            color=alt.Color("severity:N", scale=_severity_scale, sort=SEVERITY_ORDER, legend=alt.Legend(orient="bottom")),
            opacity=highlight,
            tooltip=["severity", alt.Tooltip("cases:Q", format=","), alt.Tooltip("share:Q", format=".1%")],
        )
        .add_params(pick)
    )


def severity_from_selection(picked: Iterable[Optional[str]], current: str = ALL) -> Optional[str]:
    """Severity to pass to the toggling click handler, or None when nothing changed.

    An empty selection (the slice was clicked again, or the click hit empty
    space) while a severity is active asks for that severity again, which
    clears it. A selection equal to the active severity is already applied.
    """
    values = [v for v in picked if v]
    if not values:
        return current if current != ALL else None
    fresh = [v for v in values if v != current]
    return fresh[-1] if fresh else None


def timeline_chart(final_df: pd.DataFrame) -> alt.Chart:
    src = timeline(final_df)
    return (
        alt.Chart(src, title="Timeline")
        .mark_line(point=True, color=ACCENT)
        .encode(
            x=alt.X("date:T", title=None, axis=alt.Axis(format="%b %d")),
            y=alt.Y("cases:Q", title="Total cases"),
            tooltip=[alt.Tooltip("date:T", format="%Y-%m-%d"), alt.Tooltip("cases:Q", title="Total cases", format=",")],
        )
    )


def build_charts(final_df: pd.DataFrame, selected_severity: str = "All") -> Dict[str, alt.Chart]:
    return {
        "by_country": country_bar_chart(final_df),
        "severity_share": severity_pie_chart(final_df, selected_severity),
        "timeline": timeline_chart(final_df),
    }
