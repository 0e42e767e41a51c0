from datetime import date

import streamlit as st

from app_context import require_session
from data_integrator import StorageError, fetch_column_w_id, get_gateway
from element_component import rupiah_frame, show_flash
from services.report_service import (
    MODE_PURCHASES,
    MODE_SALES,
    REPORT_TITLES,
    ReportError,
    export_report_xlsx,
    fetch_period_report,
    report_filename,
)
from utils.formatting import format_long_date, format_rp

st.set_page_config(page_title="Laporan", page_icon="📊")
st.sidebar.header("📊 Laporan")

require_session()
show_flash()
db = get_gateway()

if "period_report" not in st.session_state:
    st.session_state["period_report"] = None

ok_pm, msg_pm, payment_map = fetch_column_w_id(db, "payment_methods")
ok_prod, msg_prod, product_map = fetch_column_w_id(db, "products")
if not ok_pm:
    st.error(f"Gagal memuat metode pembayaran: {msg_pm}")
if not ok_prod:
    st.error(f"Gagal memuat produk: {msg_prod}")

with st.form("report_filter"):
    mode = st.radio(
        "Jenis laporan",
        [MODE_SALES, MODE_PURCHASES],
        format_func=lambda m: REPORT_TITLES[m],
        horizontal=True,
    )
    col_from, col_to = st.columns(2)
    with col_from:
        date_from = st.date_input("Dari", value=date.today().replace(day=1), format="DD/MM/YYYY")
    with col_to:
        date_to = st.date_input("Sampai", value="today", format="DD/MM/YYYY")

    col_prod, col_pm = st.columns(2)
    with col_prod:
        product_name = st.selectbox(
            "Produk (penjualan saja)", list(product_map.keys()), index=None, placeholder="Semua produk",
        )
    with col_pm:
        pm_name = st.selectbox(
            "Metode pembayaran", list(payment_map.keys()), index=None, placeholder="Semua metode",
        )
    applied = st.form_submit_button("Tampilkan", type="primary")

if applied:
    try:
        st.session_state["period_report"] = fetch_period_report(
            db,
            mode,
            date_from.isoformat(),
            date_to.isoformat(),
            product_id=product_map.get(product_name) if mode == MODE_SALES else None,
            payment_method_id=payment_map.get(pm_name),
        )
    except ReportError as e:
        st.error(str(e))
    except StorageError as e:
        st.error(f"Gagal memuat laporan: {e.message}")

report = st.session_state["period_report"]
if report is None:
    st.stop()

st.subheader(REPORT_TITLES[report.mode])
st.caption(f"{format_long_date(report.date_from)} - {format_long_date(report.date_to)}")
st.metric("Total", format_rp(report.total))

if not report.rows:
    st.info("Tidak ada transaksi di periode ini.")
    st.stop()

st.dataframe(
    rupiah_frame(
        [{"date": format_long_date(r.date), "description": r.description, "amount": r.amount} for r in report.rows],
        {"date": "Tanggal", "description": "Keterangan", "amount": "Nominal"},
        ["amount"],
    ),
    hide_index=True,
    width="stretch",
)

st.download_button(
    "⬇️ Export Excel",
    export_report_xlsx(report.rows),
    file_name=report_filename(report.mode, report.date_from, report.date_to),
    mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
)
