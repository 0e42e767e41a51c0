import logging
import os
from datetime import date

import streamlit as st

from app_context import report_year, require_session
from data_integrator import get_gateway
from element_component import show_flash
from services.aggregation_service import load_monthly_summaries
from utils.formatting import format_qty, format_rp

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

st.set_page_config(page_title="Dapur Asri", page_icon="🍱")
st.sidebar.header("🍱 Dashboard")

require_session()
show_flash()

year = report_year()
st.title(f"🍱 Dapur Asri {year}")

summaries = load_monthly_summaries(get_gateway(), year)
current_key = date.today().strftime("%Y-%m")

if not summaries:
    st.info("Belum ada transaksi di tahun ini.")
    st.stop()

cols = st.columns(3)
for i, month in enumerate(summaries):
    with cols[i % 3]:
        with st.container(border=True):
            title = f"**{month.label}**"
            if month.month_key == current_key:
                title += " · bulan ini"
            st.markdown(title)
            st.metric("Penjualan", format_rp(month.sales_total))
            st.metric("Pengeluaran", format_rp(month.purchases_total))

            with st.expander("Lihat detail", expanded=month.month_key == current_key):
                if not month.products:
                    st.caption("-")
                for p in month.products:
                    st.write(f"{p.name} = {format_qty(p.units)}")
