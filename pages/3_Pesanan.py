import streamlit as st
import pandas as pd

from app_context import require_session
from data_integrator import StorageError, get_gateway
from domain.models import ORDER_STATUS_LABELS, OrderLine, OrderStatus
from element_component import confirmation_dialog, flash, rupiah_frame, show_flash
from services.aggregation_service import (
    filter_orders,
    format_order_items,
    order_nominal,
    order_total_quantity,
    orders_grand_total,
    product_counts,
    product_customers,
)
from services.master_service import list_master
from services.order_service import (
    create_order,
    delete_order,
    load_order_items,
    load_orders,
    order_to_sales_draft,
    update_order,
    update_order_status,
)
from utils.formatting import format_qty, format_rp, format_short_date, to_number

st.set_page_config(page_title="Pesanan", page_icon="📋")
st.sidebar.header("📋 Pesanan")

require_session()
show_flash()
db = get_gateway()

defaults = {
    "order_lines": [],
    "editing_order_id": None,
    "selected_product": None,
    "order_delete_state": False,
}
for k, v in defaults.items():
    st.session_state.setdefault(k, v)

ok_prod, msg_prod, products = list_master(db, "products")
if not ok_prod:
    st.error(f"Gagal memuat produk: {msg_prod}")
product_by_name = {p["name"]: p for p in products}

try:
    orders = load_orders(db)
except StorageError as e:
    st.error(f"Gagal memuat pesanan: {e.message}")
    orders = []
orders_by_id = {o["id"]: o for o in orders}


def reset_form() -> None:
    st.session_state["order_lines"] = []
    st.session_state["editing_order_id"] = None


def start_edit(order_id) -> None:
    try:
        st.session_state["order_lines"] = load_order_items(db, order_id)
    except StorageError as e:
        flash(f"Gagal memuat item pesanan: {e.message}", icon="⚠️")
        return
    st.session_state["editing_order_id"] = order_id


# -----------------------------------------------------------------------------
# 1) Create / edit form
# -----------------------------------------------------------------------------
editing_id = st.session_state["editing_order_id"]
editing = orders_by_id.get(editing_id) if editing_id else None

with st.expander("✏️ Edit Pesanan" if editing else "➕ Pesanan Baru", expanded=editing is not None):
    form_key = editing_id or "new"
    customer_name = st.text_input(
        "Nama pemesan",
        value=((editing or {}).get("customers") or {}).get("name") or "",
        key=f"order_customer_{form_key}",
    )
    target_date = st.date_input(
        "Tanggal target",
        value=pd.to_datetime(editing["target_date"]).date() if editing and editing.get("target_date") else "today",
        format="DD/MM/YYYY",
        key=f"order_target_{form_key}",
    )

    col_prod, col_qty, col_add = st.columns([3, 1, 1])
    with col_prod:
        prod_name = st.selectbox(
            "Produk", list(product_by_name.keys()), index=None,
            placeholder="Pilih produk", key="order_product",
        )
    with col_qty:
        qty = st.number_input("Jumlah", min_value=0.0, value=1.0, step=1.0, key="order_qty")
    with col_add:
        st.write("")
        if st.button("Tambah", key="order_add"):
            product = product_by_name.get(prod_name)
            if not product or qty <= 0:
                st.error("Pilih produk dan jumlah lebih dari 0")
            else:
                st.session_state["order_lines"].append(
                    OrderLine(
                        product_id=product["id"],
                        product_name=product["name"],
                        unit=product.get("unit") or "",
                        quantity=to_number(qty),
                        unit_price=to_number(product.get("price")),
                    )
                )
                st.rerun()

    lines = st.session_state["order_lines"]
    for i, line in enumerate(lines):
        col_name, col_sub, col_del = st.columns([3, 2, 1])
        with col_name:
            st.write(f"{line.product_name} × {format_qty(line.quantity)} {line.unit}")
        with col_sub:
            st.write(format_rp(to_number(line.quantity) * to_number(line.unit_price)))
        with col_del:
            if st.button("🗑️", key=f"order_line_del_{i}"):
                lines.pop(i)
                st.rerun()

    col_cancel, col_save = st.columns(2)
    with col_cancel:
        st.button("Batal", on_click=reset_form, key="order_cancel")
    with col_save:
        if st.button("Simpan", type="primary", key="order_save"):
            if editing:
                ok, msg, _ = update_order(db, editing_id, customer_name, target_date.isoformat(), lines)
            else:
                ok, msg, _ = create_order(db, customer_name, target_date.isoformat(), lines)
            if ok:
                reset_form()
                flash(msg)
                st.rerun()
            st.error(msg)

st.divider()

# -----------------------------------------------------------------------------
# 2) Rollups: product chips + customers for the selected product
# -----------------------------------------------------------------------------
query = st.text_input("Cari pesanan", placeholder="Nama pemesan atau nomor pesanan")
visible = filter_orders(orders, query)

st.metric("Total nominal", format_rp(orders_grand_total(visible)))

counts = product_counts(visible)
if counts:
    st.markdown("**Produk dipesan**")
    chip_cols = st.columns(min(len(counts), 4))
    for i, pq in enumerate(counts):
        with chip_cols[i % len(chip_cols)]:
            if st.button(f"{pq.name} · {format_qty(pq.qty)}", key=f"chip_{pq.name}"):
                current = st.session_state["selected_product"]
                st.session_state["selected_product"] = None if current == pq.name else pq.name
                st.rerun()

selected_product = st.session_state["selected_product"]
if selected_product:
    st.markdown(f"**Pemesan {selected_product}**")
    rollup = product_customers(visible, selected_product)
    st.dataframe(
        pd.DataFrame(
            [
                {"Pemesan": c.customer, "Jumlah": format_qty(c.qty), "Pesanan": ", ".join(c.orders)}
                for c in rollup
            ],
            columns=["Pemesan", "Jumlah", "Pesanan"],
        ),
        hide_index=True,
        width="stretch",
    )

# -----------------------------------------------------------------------------
# 3) Order list + actions
# -----------------------------------------------------------------------------
if not visible:
    st.info("Belum ada pesanan.")
    st.stop()

list_rows = [
    {
        "order_number": o.get("order_number"),
        "customer": (o.get("customers") or {}).get("name") or "-",
        "order_date": format_short_date(o.get("order_date")),
        "target_date": format_short_date(o.get("target_date")),
        "items": format_order_items(o),
        "qty": format_qty(order_total_quantity(o)),
        "nominal": order_nominal(o),
        "status": OrderStatus.parse(o.get("status")).label,
    }
    for o in visible
]
st.dataframe(
    rupiah_frame(
        list_rows,
        {
            "order_number": "No. Pesanan",
            "customer": "Pemesan",
            "order_date": "Tanggal",
            "target_date": "Target",
            "items": "Produk",
            "qty": "Qty",
            "nominal": "Nominal",
            "status": "Status",
        },
        ["nominal"],
    ),
    hide_index=True,
    width="stretch",
)

labels = {f"{o.get('order_number')} · {(o.get('customers') or {}).get('name') or '-'}": o for o in visible}
picked = st.selectbox("Pilih pesanan", list(labels.keys()), index=None, placeholder="Pilih pesanan")
order = labels.get(picked)

if order:
    with st.container(border=True):
        statuses = list(OrderStatus)
        current_status = OrderStatus.parse(order.get("status"))
        new_status = st.selectbox(
            "Status",
            statuses,
            index=statuses.index(current_status),
            format_func=lambda s: ORDER_STATUS_LABELS[s],
            key=f"status_{order['id']}",
        )
        if new_status != current_status:
            ok, msg = update_order_status(db, order["id"], new_status.value)
            if ok:
                flash(msg)
                st.rerun()
            st.error(msg)

        col_edit, col_convert, col_del = st.columns(3)
        with col_edit:
            st.button("Edit", on_click=start_edit, args=(order["id"],), key="order_edit")
        with col_convert:
            if st.button("Jadikan transaksi", key="order_convert"):
                draft = order_to_sales_draft(order)
                if draft is None:
                    st.warning("Pesanan tidak punya item untuk dijadikan transaksi")
                else:
                    st.session_state["sales_prefill"] = draft
                    st.switch_page("pages/2_Transaksi.py")
        with col_del:
            if st.button("Hapus", key="order_delete"):
                confirmation_dialog(
                    f"Hapus pesanan {order.get('order_number')}?",
                    lambda: delete_order(db, order["id"]),
                    "order_delete_state",
                )
