from __future__ import annotations

import streamlit as st

st.set_page_config(page_title="FreshOps", page_icon="🌿", layout="wide")

pages = [
    st.Page("home.py", title="Home", icon="🏠"),
    st.Page("pages/1_🧮_Price_Calculator.py", title="Price Calculator", icon="🧮"),
    st.Page("pages/2_🏷️_Catalog_&_Client_Pricing.py", title="Catalog & Client Pricing", icon="🏷️"),
    st.Page("pages/3_🧾_Orders.py", title="Orders", icon="🧾"),
    st.Page("pages/4_🥬_Inventory_&_Waste.py", title="Inventory & Waste", icon="🥬"),
    st.Page("pages/5_💰_Receivables.py", title="Receivables", icon="💰"),
    st.Page("pages/6_📈_Dashboard.py", title="Dashboard", icon="📈"),
    st.Page("pages/7_📊_Analytics.py", title="Analytics", icon="📊"),
    st.Page("pages/8_🧪_Data_Management.py", title="Data Management", icon="🧪"),
]

st.navigation(pages).run()
