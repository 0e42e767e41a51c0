import streamlit as st
import pandas as pd

from app_context import require_session
from data_integrator import fetch_column_w_id, get_gateway
from domain.models import (
    CustomPricedInvoice,
    CustomPricedLine,
    PurchaseLine,
    SalesLine,
    StandardInvoice,
    ValidationError,
    invoice_total,
    valid_lines,
)
from element_component import confirmation_dialog, flash, rupiah_frame, show_flash
from services.aggregation_service import load_transaction_feed, transaction_feed_rows
from services.invoice_service import build_invoice_docx, invoice_filename, render_invoice_image
from services.master_service import list_master
from services.purchase_service import delete_purchase, get_purchase, save_purchases, update_purchase
from services.sales_service import (
    FlowState,
    InvoiceFlow,
    delete_sales_transaction,
    get_sales_transaction,
    invoice_from_transaction,
)
from utils.formatting import format_long_date, format_rp, today_iso, to_number

st.set_page_config(page_title="Transaksi", page_icon="💸")
st.sidebar.header("💸 Transaksi")

require_session()
show_flash()
db = get_gateway()

# -----------------------------------------------------------------------------
# Session state defaults
# -----------------------------------------------------------------------------
defaults = {
    "invoice_flow": None,
    "invoice_lines": [],
    "purchase_lines": [],
    "editing_purchase_id": None,
    "delete_state": False,
}
for k, v in defaults.items():
    st.session_state.setdefault(k, v)

# A draft handed over from the orders page
if "sales_prefill" in st.session_state:
    prefill = st.session_state.pop("sales_prefill")
    st.session_state["invoice_flow"] = InvoiceFlow(prefill)
    st.session_state["invoice_lines"] = list(prefill.lines)
    st.info(f"Draft dari pesanan {prefill.source_order_number}")

# -----------------------------------------------------------------------------
# Lookups (re-fetched on every run)
# -----------------------------------------------------------------------------
ok_pm, msg_pm, payment_map = fetch_column_w_id(db, "payment_methods")
ok_cat, msg_cat, category_map = fetch_column_w_id(db, "purchase_categories")
ok_prod, msg_prod, products = list_master(db, "products")
if not ok_pm:
    st.error(f"Gagal memuat metode pembayaran: {msg_pm}")
if not ok_prod:
    st.error(f"Gagal memuat produk: {msg_prod}")
product_by_name = {p["name"]: p for p in products}
payment_name_by_id = {v: k for k, v in payment_map.items()}


def start_flow(kind: str) -> None:
    draft_cls = CustomPricedInvoice if kind == "custom" else StandardInvoice
    st.session_state["invoice_flow"] = InvoiceFlow(draft_cls(transaction_date=today_iso()))
    st.session_state["invoice_lines"] = []


def close_flow() -> None:
    flow = st.session_state["invoice_flow"]
    if flow:
        flow.cancel()
    st.session_state["invoice_flow"] = None
    st.session_state["invoice_lines"] = []


def lines_frame(lines) -> pd.DataFrame:
    rows = [
        {
            "product_name": line.product_name or "(Produk)",
            "quantity": f"{to_number(line.quantity)} {line.unit}".strip(),
            "price": line.effective_price,
            "subtotal": line.subtotal,
        }
        for line in lines
    ]
    return rupiah_frame(
        rows,
        {"product_name": "Produk", "quantity": "Qty", "price": "Harga", "subtotal": "Subtotal"},
        ["price", "subtotal"],
    )


# -----------------------------------------------------------------------------
# 1) Sales invoice: entry -> preview -> committed
# -----------------------------------------------------------------------------
st.subheader("Penjualan")

flow = st.session_state["invoice_flow"]

if flow is None or not flow.is_open and flow.state != FlowState.COMMITTED:
    col_new, col_custom = st.columns(2)
    with col_new:
        st.button("➕ Entri Penjualan", on_click=start_flow, args=("standard",))
    with col_custom:
        st.button("🧾 Custom Invoice", on_click=start_flow, args=("custom",))

elif flow.state == FlowState.ENTRY:
    draft = flow.draft
    is_custom = isinstance(draft, CustomPricedInvoice)
    editing = getattr(draft, "editing_transaction_id", None)
    title = "Edit Penjualan" if editing else ("Custom Invoice" if is_custom else "Entri Penjualan Baru")

    with st.container(border=True):
        st.markdown(f"**{title}**")
        col_date, col_pm = st.columns(2)
        with col_date:
            txn_date = st.date_input(
                "Tanggal",
                value=pd.to_datetime(draft.transaction_date).date(),
                format="DD/MM/YYYY",
                key=f"sales_date_{id(flow)}",
            )
        with col_pm:
            pm_names = list(payment_map.keys())
            current_pm = payment_name_by_id.get(draft.payment_method_id)
            pm_name = st.selectbox(
                "Bayar pakai ?",
                pm_names,
                index=pm_names.index(current_pm) if current_pm in pm_names else None,
                placeholder="Pilih metode",
                key=f"sales_payment_{id(flow)}",
            )

        # Add item row
        col_prod, col_qty, col_add = st.columns([3, 1, 1])
        with col_prod:
            prod_name = st.selectbox(
                "Tambah barang", list(product_by_name.keys()), index=None,
                placeholder="Pilih produk", key="sales_product",
            )
        with col_qty:
            qty = st.number_input("Jumlah", min_value=0.0, value=1.0, step=1.0, key="sales_qty")
        with col_add:
            st.write("")
            add_clicked = st.button("Tambah", key="sales_add")

        if add_clicked:
            product = product_by_name.get(prod_name)
            if not product or qty <= 0:
                st.error("Pilih produk dan jumlah lebih dari 0")
            else:
                price = to_number(product.get("price"))
                line_args = dict(
                    product_id=product["id"],
                    product_name=product["name"],
                    unit=product.get("unit") or "",
                    quantity=to_number(qty),
                    unit_price=price,
                )
                line = CustomPricedLine(custom_price=price, **line_args) if is_custom else SalesLine(**line_args)
                st.session_state["invoice_lines"].append(line)
                st.rerun()

        lines = st.session_state["invoice_lines"]
        for i, line in enumerate(lines):
            col_name, col_price, col_del = st.columns([3, 2, 1])
            with col_name:
                st.write(f"{line.product_name} × {to_number(line.quantity)} {line.unit}")
            with col_price:
                if is_custom:
                    line.custom_price = st.number_input(
                        "Harga custom", min_value=0.0, value=float(line.custom_price),
                        step=500.0, key=f"custom_price_{id(line)}",
                    )
                else:
                    st.write(format_rp(line.subtotal))
            with col_del:
                if st.button("🗑️", key=f"sales_del_{i}"):
                    lines.pop(i)
                    st.rerun()

        draft.transaction_date = txn_date.isoformat()
        draft.payment_method_id = payment_map.get(pm_name)
        draft.payment_method_name = pm_name or ""
        draft.lines = list(lines)
        st.markdown(f"**Total: {format_rp(invoice_total(draft))}**")

        col_cancel, col_next = st.columns(2)
        with col_cancel:
            st.button("Batal", on_click=close_flow, key="sales_cancel")
        with col_next:
            if st.button("Generate Invoice", type="primary", key="sales_preview"):
                try:
                    flow.to_preview(draft)
                    st.rerun()
                except ValidationError as e:
                    st.error(str(e))

elif flow.state == FlowState.PREVIEW:
    draft = flow.draft
    with st.container(border=True):
        st.markdown("**Preview Invoice**")
        st.write(f"Tanggal: {format_long_date(draft.transaction_date)}")
        if draft.payment_method_name:
            st.write(f"Metode pembayaran: {draft.payment_method_name}")
        st.dataframe(lines_frame(valid_lines(draft)), hide_index=True, width="stretch")
        st.markdown(f"**Total: {format_rp(invoice_total(draft))}**")
        with st.expander("Gambar invoice"):
            st.image(render_invoice_image(draft))

        if flow.last_error:
            st.error(flow.last_error)

        col_back, col_cancel, col_ok = st.columns(3)
        with col_back:
            if st.button("Kembali", key="preview_back"):
                flow.back()
                st.rerun()
        with col_cancel:
            st.button("Batal", on_click=close_flow, key="preview_cancel")
        with col_ok:
            if st.button("Konfirmasi", type="primary", key="preview_confirm"):
                with st.spinner("Menyimpan..."):
                    ok, msg, _ = flow.confirm(db)
                if ok:
                    flash(msg)
                st.rerun()

elif flow.state == FlowState.COMMITTED:
    committed = flow.result
    st.success(f"Transaksi {committed.transaction_no or ''} tersimpan")
    png = render_invoice_image(committed)
    st.image(png)
    col_png, col_docx, col_done = st.columns(3)
    with col_png:
        st.download_button("Download PNG", png, file_name=invoice_filename(committed, "png"), mime="image/png")
    with col_docx:
        st.download_button(
            "Download DOCX",
            build_invoice_docx(committed),
            file_name=invoice_filename(committed, "docx"),
            mime="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        )
    with col_done:
        st.button("Selesai", on_click=close_flow, key="committed_done")

st.divider()

# -----------------------------------------------------------------------------
# 2) Purchases: several lines at once, or one line when editing
# -----------------------------------------------------------------------------
st.subheader("Pengeluaran")

editing_purchase_id = st.session_state["editing_purchase_id"]
editing_purchase = get_purchase(db, editing_purchase_id) if editing_purchase_id else None
category_names = list(category_map.keys())
pm_names = list(payment_map.keys())

with st.form("purchase_form", clear_on_submit=not editing_purchase):
    st.markdown("**Edit Pembelian**" if editing_purchase else "**Entri Pembelian Baru**")
    col_date, col_pm = st.columns(2)
    with col_date:
        p_date = st.date_input(
            "Tanggal",
            value=pd.to_datetime(editing_purchase["transaction_date"]).date() if editing_purchase else "today",
            format="DD/MM/YYYY",
        )
    with col_pm:
        current_pm = editing_purchase["payment_method_name"] if editing_purchase else None
        p_pm = st.selectbox(
            "Bayar pakai ?", pm_names,
            index=pm_names.index(current_pm) if current_pm in pm_names else None,
            placeholder="Pilih metode",
        )

    col_cat, col_desc, col_amount = st.columns([2, 3, 2])
    with col_cat:
        current_cat = editing_purchase["category_name"] if editing_purchase else None
        p_cat = st.selectbox(
            "Kategori", category_names,
            index=category_names.index(current_cat) if current_cat in category_names else None,
            placeholder="Pilih kategori",
        )
    with col_desc:
        p_desc = st.text_input("Keterangan", value=editing_purchase["description"] if editing_purchase else "")
    with col_amount:
        p_amount = st.number_input(
            "Nominal", min_value=0.0, step=1000.0,
            value=float(to_number(editing_purchase["amount"])) if editing_purchase else 0.0,
        )

    if editing_purchase:
        col_save, col_cancel = st.columns(2)
        with col_save:
            save_clicked = st.form_submit_button("Simpan", type="primary")
        with col_cancel:
            cancel_clicked = st.form_submit_button("Batal")
        add_clicked = False
    else:
        col_add, col_save = st.columns(2)
        with col_add:
            add_clicked = st.form_submit_button("➕ Tambah item")
        with col_save:
            save_clicked = st.form_submit_button("Simpan semua", type="primary")
        cancel_clicked = False

current_line = PurchaseLine(
    category_id=category_map.get(p_cat),
    description=p_desc,
    amount=p_amount,
    category_name=p_cat or "",
)

if cancel_clicked:
    st.session_state["editing_purchase_id"] = None
    st.rerun()

if add_clicked:
    if current_line.is_valid:
        st.session_state["purchase_lines"].append(current_line)
    else:
        st.error("Kategori dan keterangan wajib diisi")

if save_clicked:
    if editing_purchase:
        ok, msg = update_purchase(db, editing_purchase_id, current_line, p_date.isoformat(), payment_map.get(p_pm))
        if ok:
            st.session_state["editing_purchase_id"] = None
            flash(msg)
            st.rerun()
        st.error(msg)
    else:
        pending = list(st.session_state["purchase_lines"])
        if current_line.is_valid:
            pending.append(current_line)
        ok, msg, _ = save_purchases(db, pending, p_date.isoformat(), payment_map.get(p_pm))
        if ok:
            st.session_state["purchase_lines"] = []
            flash(msg)
            st.rerun()
        st.error(msg)

if st.session_state["purchase_lines"] and not editing_purchase:
    rows = [
        {"category": ln.category_name, "description": ln.description, "amount": ln.amount}
        for ln in st.session_state["purchase_lines"]
    ]
    st.dataframe(
        rupiah_frame(rows, {"category": "Kategori", "description": "Keterangan", "amount": "Nominal"}, ["amount"]),
        hide_index=True,
        width="stretch",
    )
    if st.button("Kosongkan item"):
        st.session_state["purchase_lines"] = []
        st.rerun()

st.divider()

# -----------------------------------------------------------------------------
# 3) Transaction list + detail
# -----------------------------------------------------------------------------
st.subheader("Daftar Transaksi")

feed, feed_errors = load_transaction_feed(db)
for err in feed_errors:
    st.error(err)

if not feed:
    st.info("Belum ada transaksi.")
    st.stop()

list_rows = transaction_feed_rows(feed, {v: k for k, v in category_map.items()})
st.dataframe(
    rupiah_frame(
        list_rows,
        {"date": "Tanggal", "type": "Jenis", "description": "Keterangan", "amount": "Nominal"},
        ["amount"],
    ),
    hide_index=True,
    width="stretch",
)

picked = st.selectbox(
    "Lihat detail",
    range(len(list_rows)),
    index=None,
    format_func=lambda i: list_rows[i]["label"],
    placeholder="Pilih transaksi",
)
selected = list_rows[picked] if picked is not None else None

if selected and selected["_type"] == "sales":
    tx = get_sales_transaction(db, selected["id"])
    if not tx:
        st.warning("Transaksi tidak ditemukan")
    else:
        with st.container(border=True):
            st.markdown(f"**{tx.get('transaction_no')}** · {format_long_date(tx.get('transaction_date'))}")
            if tx["payment_method_name"]:
                st.write(f"Metode pembayaran: {tx['payment_method_name']}")
            detail_rows = [
                {
                    "product": (d.get("products") or {}).get("name") or "-",
                    "quantity": to_number(d.get("quantity")),
                    "price": d.get("unit_price"),
                    "subtotal": d.get("subtotal"),
                }
                for d in tx["details"]
            ]
            st.dataframe(
                rupiah_frame(
                    detail_rows,
                    {"product": "Produk", "quantity": "Qty", "price": "Harga", "subtotal": "Subtotal"},
                    ["price", "subtotal"],
                ),
                hide_index=True,
                width="stretch",
            )
            st.markdown(f"**Total: {format_rp(tx.get('total'))}**")

            col_edit, col_del = st.columns(2)
            with col_edit:
                if st.button("Edit", key="sales_edit"):
                    draft = invoice_from_transaction(db, tx["id"])
                    if draft is None:
                        st.warning("Transaksi tidak ditemukan")
                    else:
                        st.session_state["invoice_flow"] = InvoiceFlow(draft)
                        st.session_state["invoice_lines"] = list(draft.lines)
                        st.rerun()
            with col_del:
                if st.button("Hapus", key="sales_delete"):
                    confirmation_dialog(
                        f"Hapus transaksi {tx.get('transaction_no')}?",
                        lambda: delete_sales_transaction(db, tx["id"]),
                        "delete_state",
                    )

elif selected:
    purchase = get_purchase(db, selected["id"])
    if not purchase:
        st.warning("Transaksi tidak ditemukan")
    else:
        with st.container(border=True):
            st.markdown(f"**{purchase['category_name'] or '-'}** · {format_long_date(purchase.get('transaction_date'))}")
            st.write(purchase.get("description") or "-")
            if purchase["payment_method_name"]:
                st.write(f"Metode pembayaran: {purchase['payment_method_name']}")
            st.markdown(f"**{format_rp(purchase.get('amount'))}**")

            col_edit, col_del = st.columns(2)
            with col_edit:
                if st.button("Edit", key="purchase_edit"):
                    st.session_state["editing_purchase_id"] = purchase["id"]
                    st.rerun()
            with col_del:
                if st.button("Hapus", key="purchase_delete"):
                    confirmation_dialog(
                        "Hapus transaksi pembelian ini?",
                        lambda: delete_purchase(db, purchase["id"]),
                        "delete_state",
                    )
