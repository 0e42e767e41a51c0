import streamlit as st

from app_context import require_session
from data_integrator import get_gateway
from element_component import confirmation_dialog, flash, rupiah_frame, show_flash
from services.master_service import DEFAULT_UNIT, MASTER_TABLES, delete_master, list_master, save_master, search_products
from utils.formatting import to_number

st.set_page_config(page_title="Master Data", page_icon="🗂️")
st.sidebar.header("🗂️ Master Data")

require_session()
show_flash()
db = get_gateway()

if "master_delete_state" not in st.session_state:
    st.session_state["master_delete_state"] = False


def render_master(table: str) -> None:
    label = MASTER_TABLES[table][0]
    is_product = table == "products"

    ok, msg, rows = list_master(db, table)
    if not ok:
        st.error(f"Gagal memuat {label.lower()}: {msg}")
        return

    if is_product:
        query = st.text_input("Cari produk", key=f"search_{table}", placeholder="Nama atau satuan")
        rows = search_products(rows, query)
        st.dataframe(
            rupiah_frame(rows, {"name": "Nama", "price": "Harga", "unit": "Satuan"}, ["price"]),
            hide_index=True,
            width="stretch",
        )
    else:
        st.dataframe(
            rupiah_frame(rows, {"name": "Nama"}, []),
            hide_index=True,
            width="stretch",
        )

    by_name = {r["name"]: r for r in rows}
    picked = st.selectbox(
        f"Edit {label.lower()}",
        list(by_name.keys()),
        index=None,
        placeholder=f"Kosongkan untuk {label.lower()} baru",
        key=f"pick_{table}",
    )
    current = by_name.get(picked)
    suffix = current["id"] if current else "new"

    with st.form(f"form_{table}_{suffix}", clear_on_submit=current is None):
        st.markdown(f"**Edit {label}**" if current else f"**Tambah {label}**")
        values = {"name": st.text_input("Nama", value=(current or {}).get("name", ""))}
        if is_product:
            col_price, col_unit = st.columns(2)
            with col_price:
                values["price"] = st.number_input(
                    "Harga", min_value=0.0, step=500.0,
                    value=float(to_number((current or {}).get("price"))),
                )
            with col_unit:
                values["unit"] = st.text_input(
                    "Satuan", value=(current or {}).get("unit") or DEFAULT_UNIT,
                )
        submitted = st.form_submit_button("Simpan", type="primary")

    if submitted:
        ok, msg, _ = save_master(db, table, values, row_id=current["id"] if current else None)
        if ok:
            flash(msg)
            st.rerun()
        st.error(msg)

    if current and st.button(f"Hapus {label.lower()}", key=f"delete_{table}"):
        confirmation_dialog(
            f"Hapus {label.lower()} '{current['name']}'?",
            lambda: delete_master(db, table, current["id"]),
            "master_delete_state",
        )


tab_products, tab_categories, tab_payments = st.tabs(["Produk", "Kategori", "Metode Pembayaran"])
with tab_products:
    render_master("products")
with tab_categories:
    render_master("purchase_categories")
with tab_payments:
    render_master("payment_methods")
