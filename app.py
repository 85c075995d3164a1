import json
import logging
from typing import Optional

import folium
import streamlit as st
from folium.plugins import Draw
from streamlit_folium import st_folium

from surveillance.charts import SEVERITY_SELECTION, severity_from_selection
from surveillance.config import settings_from_env
from surveillance.data import ALL, DISEASES, SEVERITY_COLORS, SEVERITY_ORDER
from surveillance.filters import DrawMode
from surveillance.geometry import SpatialSelectionError
from surveillance.reconcile import Dashboard, DashboardView

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("surveillance.app")

MAP_CENTER = [50.0, 15.0]
MAP_ZOOM = 4
DRAW_COLOR = "#C227F5"


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #374151;margin-bottom: 10px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {border: 1px solid #4b5563;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;}
        .dot {display: inline-block;width: 10px;height: 10px;border-radius: 50%;margin-right: 6px;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


def format_filter_summary(view: DashboardView) -> str:
    state = view.state
    chips = [
        f"Disease: {state.categorical.disease}",
        f"Severity: {state.categorical.severity}",
        f"Area: {len(state.spatial.included_ids)} in selection" if state.spatial.is_active else "Area: All",
    ]
    return "".join([f"<span class='chip'>{txt}</span>" for txt in chips])


def format_legend() -> str:
    return "".join(
        f"<span class='chip'><span class='dot' style='background:{SEVERITY_COLORS[s]}'></span>{s}</span>"
        for s in SEVERITY_ORDER
    )


def get_dashboard() -> Dashboard:
    if "dashboard" not in st.session_state:
        st.session_state["dashboard"] = Dashboard(settings=settings_from_env())
    return st.session_state["dashboard"]


def consume_once(key: str, payload: object) -> bool:
    """True the first time a given widget payload is seen.

    Widgets keep returning their last value on every rerun; feeding that value
    back into the dashboard each time would loop.
    """
    signature = json.dumps(payload, sort_keys=True, default=str)
    if st.session_state.get(key) == signature:
        return False
    st.session_state[key] = signature
    return True


# ---------- map ----------
def build_map(view: DashboardView) -> folium.Map:
    m = folium.Map(location=MAP_CENTER, zoom_start=MAP_ZOOM, tiles="CartoDB dark_matter")
    points = view.map_points()
    for row in points.itertuples(index=False):
        color = SEVERITY_COLORS.get(row.severity, "#ffffff")
        folium.CircleMarker(
            location=[row.lat, row.lng],
            radius=max(4, min(row.cases / 15, 12)),
            color="#ffffff",
            weight=1,
            opacity=0.2 if row.dimmed else 0.9,
            fill=True,
            fill_color=color,
            fill_opacity=0.25 if row.dimmed else 1.0,
            tooltip=None if row.dimmed else f"{row.disease} | {row.country} | Cases: {row.cases} ({row.severity})",
        ).add_to(m)

    if view.geometry is not None:
        ring = [[lat, lng] for lng, lat in view.geometry["ring"]]
        folium.Polygon(ring, color=DRAW_COLOR, weight=2, fill=True, fill_opacity=0.15).add_to(m)
        if view.geometry.get("center"):
            lng, lat = view.geometry["center"]
            folium.CircleMarker([lat, lng], radius=6, color=DRAW_COLOR, weight=3, fill=True, fill_color="#ffffff", fill_opacity=1).add_to(m)
    if view.pending_buffer is not None:
        lng, lat = view.pending_buffer
        folium.CircleMarker([lat, lng], radius=6, color=DRAW_COLOR, weight=3, fill=True, fill_color="#ffffff", fill_opacity=1).add_to(m)

    mode = view.state.draw_mode
    if mode != DrawMode.IDLE:
        Draw(
            draw_options={
                "polygon": mode == DrawMode.DRAWING_POLYGON,
                "marker": mode == DrawMode.DRAWING_BUFFER,
                "polyline": False,
                "rectangle": False,
                "circle": False,
                "circlemarker": False,
            },
            edit_options={"edit": False, "remove": False},
        ).add_to(m)
    return m


def handle_drawing(dashboard: Dashboard, drawing: Optional[dict]) -> bool:
    if not drawing or not consume_once("_consumed_drawing", drawing):
        return False
    geom = drawing.get("geometry") or {}
    mode = dashboard.state.draw_mode
    logger.info("Map drawing received: %s (mode=%s)", geom.get("type"), mode.value)
    if geom.get("type") == "Polygon" and mode == DrawMode.DRAWING_POLYGON:
        view = dashboard.polygon_drawn(geom["coordinates"][0])
        if view.notice:
            st.session_state["_notice"] = f"Selection discarded: {view.notice}"
        return True
    if geom.get("type") == "Point" and mode == DrawMode.DRAWING_BUFFER:
        dashboard.buffer_point_chosen(tuple(geom["coordinates"][:2]))
        return True
    return False


# ---------- charts ----------
def handle_severity_event(dashboard: Dashboard, event) -> bool:
    """Feed a pie click into the dashboard.

    Clicking the active slice again, or empty chart space, empties the
    selection and resets severity to All.
    """
    if event is None:
        return False
    picked = [p.get("severity") for p in (event.get("selection") or {}).get(SEVERITY_SELECTION) or []]
    if not consume_once("_consumed_severity", picked):
        return False
    value = severity_from_selection(picked, dashboard.state.categorical.severity)
    if value is None:
        return False
    dashboard.severity_clicked(value)
    return True


# ---------- UI setup ----------
st.set_page_config(page_title="Epidemiological Surveillance", layout="wide")
inject_base_styles()
dashboard = get_dashboard()
view = dashboard.view

with st.sidebar:
    st.markdown("### Filters")
    options = [ALL] + sorted(DISEASES)
    disease = st.selectbox("Disease", options, index=options.index(view.state.categorical.disease))
    if disease != view.state.categorical.disease:
        view = dashboard.set_disease(disease)

    if st.button("Refresh data"):
        for key in ("_consumed_drawing", "_consumed_severity", "severity_chart"):
            st.session_state.pop(key, None)
        dashboard.refresh()
        st.rerun()

    st.markdown("---")
    st.markdown("### Spatial selection")
    mode = view.state.draw_mode
    cols = st.columns(2)
    if cols[0].button("Draw polygon", type="primary" if mode == DrawMode.DRAWING_POLYGON else "secondary"):
        dashboard.begin_polygon_draw()
        st.rerun()
    if cols[1].button("Buffer", type="primary" if mode == DrawMode.DRAWING_BUFFER else "secondary"):
        dashboard.begin_buffer_draw()
        st.rerun()
    if st.button("Clear selection", disabled=not (view.state.spatial.is_active or mode != DrawMode.IDLE)):
        dashboard.clear_selection()
        st.rerun()

    st.markdown("---")
    st.markdown("### Legend")
    st.markdown(f"<div class='chip-row'>{format_legend()}</div>", unsafe_allow_html=True)

st.markdown("<div class='app-top-bar'><div class='page-title'>Epidemiological Surveillance</div></div>", unsafe_allow_html=True)
st.markdown(f"<div class='chip-row'>{format_filter_summary(view)}</div>", unsafe_allow_html=True)
notice = st.session_state.pop("_notice", None)
if notice:
    st.warning(notice)

kpi_cols = st.columns(2)
kpi_cols[0].metric("Total cases", f"{view.kpis['total_cases']:,}")
kpi_cols[1].metric("Critical cases", f"{view.kpis['critical_cases']:,}")

if view.pending_buffer is not None:
    with st.container(border=True):
        st.markdown("**Buffer radius**")
        radius = st.number_input("Radius (km)", min_value=0.0, value=float(dashboard.settings.default_radius_km), step=10.0)
        c1, c2 = st.columns(2)
        if c1.button("Apply buffer", type="primary"):
            try:
                dashboard.confirm_buffer(None, radius)
                st.rerun()
            except SpatialSelectionError as exc:
                st.error(str(exc))
        if c2.button("Cancel"):
            dashboard.cancel_draw()
            st.rerun()

map_col, chart_col = st.columns([3, 2])
with map_col:
    out = st_folium(build_map(view), height=560, use_container_width=True, key="map", returned_objects=["last_active_drawing"])
    if handle_drawing(dashboard, (out or {}).get("last_active_drawing")):
        st.rerun()

charts = view.charts()
with chart_col:
    event = st.altair_chart(charts["severity_share"], use_container_width=True, on_select="rerun", key="severity_chart")
    if handle_severity_event(dashboard, event):
        st.rerun()
st.altair_chart(charts["by_country"], use_container_width=True)
st.altair_chart(charts["timeline"], use_container_width=True)
