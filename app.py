"""
NYC Yellow Taxi Dashboard
=========================

This Streamlit application renders trip data served by the backend Trips API.
It includes:

- Fare and distance range filters applied on demand ("Apply Filter")
- A map of pickup locations for the first 10 located trips
- A bar chart of trips per fare range
- Summary metrics for the current result set

The backend location is read from the BACKEND_URL environment variable and
falls back to http://localhost:5000. Run with `streamlit run app.py`.
"""

import logging

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from trip_dashboard import BACKEND_URL, TripDashboardController

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# ============================================================================
# CONFIGURATION: Map and chart appearance
# ============================================================================
MAP_CENTER = {"lat": 40.7128, "lon": -74.006}
MAP_ZOOM = 12
BAR_COLORS = ["#3b82f6", "#10b981", "#ef4444"]

# (UI input name, label) for the sidebar number inputs
FILTER_INPUTS = [
    ("fareMin", "Fare Min"),
    ("fareMax", "Fare Max"),
    ("distanceMin", "Distance Min"),
    ("distanceMax", "Distance Max"),
]


# Center Title Utility Function for Plotly Figures
def center_titles(fig: go.Figure) -> go.Figure:
    """
    Utility function to center the title of a Plotly figure.

    Args:
        fig: A Plotly Figure object

    Returns:
        The same Figure object with the title centered
    """
    fig.update_layout(title_x=0.5)
    return fig


def get_controller() -> TripDashboardController:
    """Return this session's controller, creating it (and its first query) on first use."""
    if "controller" not in st.session_state:
        logger.info("Starting dashboard session against %s", BACKEND_URL)
        controller = TripDashboardController(BACKEND_URL)
        with st.spinner("Loading trips..."):
            controller.initialize()
        st.session_state["controller"] = controller
    return st.session_state["controller"]


def fare_chart(aggregate: dict) -> go.Figure:
    """
    Build the bar chart of trips per fare range.

    Args:
        aggregate: Ordered mapping of fare range label to trip count

    Returns:
        Plotly bar chart with one colored bar per fare range
    """
    chart_df = pd.DataFrame({"fare_range": list(aggregate), "trips": list(aggregate.values())})
    fig = px.bar(
        chart_df,
        x="fare_range",
        y="trips",
        title="Trips by Fare Range",
        labels={"fare_range": "Fare Range ($)", "trips": "Number of Trips"},
        color="fare_range",
        color_discrete_sequence=BAR_COLORS,
    )
    fig.update_layout(height=400, showlegend=False)
    return center_titles(fig)


def pickup_map(markers: list) -> go.Figure:
    """
    Build the pickup location map centered on Manhattan.

    Args:
        markers: (latitude, longitude) pairs to plot

    Returns:
        Plotly map figure on OpenStreetMap tiles
    """
    marker_df = pd.DataFrame(markers, columns=["pickup_latitude", "pickup_longitude"])
    fig = px.scatter_map(
        marker_df,
        lat="pickup_latitude",
        lon="pickup_longitude",
        center=MAP_CENTER,
        zoom=MAP_ZOOM,
        map_style="open-street-map",
    )
    fig.update_traces(marker={"size": 12})
    fig.update_layout(height=400, margin={"l": 0, "r": 0, "t": 0, "b": 0})
    return fig


# ============================================================================
# STREAMLIT APP: Main Dashboard Layout
# ============================================================================

st.set_page_config(page_title="NYC Yellow Taxi Dashboard", layout="wide")

st.title("🚕 NYC Yellow Taxi Dashboard")

controller = get_controller()

# ============================================================================
# SECTION 1: SIDEBAR FILTERS
# ============================================================================

st.sidebar.header("📊 Filter Options")
st.sidebar.markdown("Leave a field empty for no bound, then press **Apply Filter**.")

for name, label in FILTER_INPUTS:
    value = st.sidebar.number_input(label, min_value=0.0, value=None, key=name)
    controller.update_filter_field(name, value)

if st.sidebar.button("Apply Filter", type="primary"):
    with st.spinner("Fetching trips..."):
        controller.execute_query()

if controller.last_error:
    st.warning(f"⚠️ Could not refresh trips, showing previous results. ({controller.last_error})")

# ============================================================================
# SECTION 2: SUMMARY METRICS
# ============================================================================

aggregate = controller.fare_aggregate
markers = controller.marker_projection

col1, col2, col3 = st.columns(3)
col1.metric("Trips Returned", f"{len(controller.trips):,}")
col2.metric("Trips Charted", f"{sum(aggregate.values()):,}", help="Trips with a fare of $5 or more")
col3.metric("Markers Shown", f"{len(markers)}", help="First 10 trips with pickup coordinates")

# ============================================================================
# SECTION 3: MAP AND CHART
# ============================================================================

map_col, chart_col = st.columns(2)

with map_col:
    st.markdown("## Trip Map")
    if not markers:
        st.info("No trips with pickup coordinates to display.")
    st.plotly_chart(pickup_map(markers), use_container_width=True)

with chart_col:
    st.markdown("## Trip Statistics")
    st.plotly_chart(fare_chart(aggregate), use_container_width=True)
