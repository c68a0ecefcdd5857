from __future__ import annotations

import streamlit as st

from freshops.config import get_settings
from freshops.db import get_conn, ensure_schema
from freshops.services.demo_data import upsert_reference_data

st.set_page_config(page_title="FreshOps", page_icon="🌿", layout="wide")

st.title("🌿 FreshOps — Pricing & Operations")
st.caption("Cost-plus pricing, client price lists, orders with receivables, waste tracking and a simple capital view.")

settings = get_settings()
conn = get_conn(settings.db_path)
ensure_schema(conn)
upsert_reference_data(conn)

with st.sidebar:
    st.subheader("Environment")
    st.write(f"**Data directory:** `{settings.data_dir}`")
    st.write(f"**Database:** `{settings.db_path.name}`")
    st.write(f"**Currency:** {settings.currency}")

st.info(
    "Use the left sidebar navigation. Set overhead/labor and margins in **🧮 Price Calculator**, "
    "assign client prices in **🏷️ Catalog & Client Pricing**, then create **🧾 Orders**. "
    "Load sample data from **🧪 Data Management** to explore the dashboard and analytics.",
    icon="ℹ️",
)
