from domain.models import PurchaseLine
from services.purchase_service import delete_purchase, get_purchase, save_purchases, update_purchase


def test_save_purchases_batches_valid_lines_only(db, catalog):
    bahan = catalog["bahan"]["id"]
    lines = [
        PurchaseLine(category_id=bahan, description=" Beras 25kg ", amount=300000),
        PurchaseLine(category_id=bahan, description="Minyak", amount=0),
        PurchaseLine(category_id=bahan, description="   ", amount=5000),
        PurchaseLine(category_id=None, description="Gas", amount=22000),
    ]

    ok, msg, rows = save_purchases(db, lines, "2026-03-10", catalog["tunai"]["id"])

    assert ok, msg
    assert [r["description"] for r in rows] == ["Beras 25kg", "Minyak"]
    assert db.calls.count(("insert", "purchase_transactions")) == 1
    assert all(r["payment_method_id"] == catalog["tunai"]["id"] for r in db.rows("purchase_transactions"))


def test_save_purchases_rejects_when_no_valid_line(db):
    ok, _, rows = save_purchases(db, [PurchaseLine(category_id=None, description="", amount=1)], "2026-03-10")
    assert not ok
    assert rows == []
    assert db.rows("purchase_transactions") == []


def test_save_purchases_reports_backend_error(db, catalog):
    db.fail_on("insert", "purchase_transactions")
    ok, msg, _ = save_purchases(
        db, [PurchaseLine(category_id=catalog["bahan"]["id"], description="Beras", amount=1)], "2026-03-10"
    )
    assert not ok
    assert "injected" in msg


def test_update_get_and_delete_purchase(db, catalog):
    bahan = catalog["bahan"]["id"]
    _, _, (row,) = save_purchases(db, [PurchaseLine(category_id=bahan, description="Beras", amount=1000)], "2026-03-10")

    ok, _ = update_purchase(
        db, row["id"], PurchaseLine(category_id=bahan, description="Beras premium", amount=1500),
        "2026-03-11", catalog["tunai"]["id"],
    )
    assert ok

    purchase = get_purchase(db, row["id"])
    assert purchase["description"] == "Beras premium"
    assert purchase["amount"] == 1500
    assert purchase["category_name"] == "Bahan Baku"
    assert purchase["payment_method_name"] == "Tunai"

    ok, _ = delete_purchase(db, row["id"])
    assert ok
    assert get_purchase(db, row["id"]) is None


def test_update_purchase_rejects_invalid_line(db):
    ok, _ = update_purchase(db, 1, PurchaseLine(category_id=None, description="x", amount=1), "2026-03-10")
    assert not ok
    assert ("update", "purchase_transactions") not in db.calls
