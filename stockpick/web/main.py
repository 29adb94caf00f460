from __future__ import annotations

from pathlib import Path
from urllib.parse import quote
from typing import Any, Optional

from fastapi import Depends, FastAPI, Form, HTTPException, Request
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from stockpick.config import settings
from stockpick.constants import ORDER_STATUSES, WEIGHT_UNITS
from stockpick.core.catalog import add_product, brands, list_products
from stockpick.core.orders import list_orders, load_order, load_order_items
from stockpick.core.picking import PickSession
from stockpick.core.progress import PickingProgressStore
from stockpick.db.store import DocumentStore
from stockpick.errors import OrderNotFoundError, StockpickError
from stockpick.services.pick_list_pdf import generate_pick_list_pdf
from stockpick.storage.local import LocalStorage
from stockpick.utils.formatters import ordered_text, short_date, status_text


BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

app = FastAPI(title="stockpick console")

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.globals.update(status_text=status_text, short_date=short_date, ordered_text=ordered_text)

if STATIC_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

_store = DocumentStore(settings.db_path)
_progress = PickingProgressStore(LocalStorage(settings.local_storage_path), ttl_days=settings.progress_ttl_days)


@app.on_event("startup")
def _startup() -> None:
    _store.init_db()


def get_store() -> DocumentStore:
    return _store


def get_progress() -> PickingProgressStore:
    return _progress


def get_export_dir() -> str:
    return settings.export_dir


def _render(request: Request, name: str, ctx: dict[str, Any]) -> HTMLResponse:
    base = {
        "request": request,
        "statuses": ORDER_STATUSES,
    }
    base.update(ctx)
    return templates.TemplateResponse(request, name, base)


@app.get("/")
def index():
    return RedirectResponse(url="/orders", status_code=303)


# ---------------- products ----------------

@app.get("/products", response_class=HTMLResponse)
async def products(
    request: Request,
    brand: str = "",
    msg: str = "",
    store: DocumentStore = Depends(get_store),
):
    all_rows = await list_products(store)
    rows = [p for p in all_rows if p.brand == brand] if brand else all_rows
    return _render(
        request,
        "products.html",
        {
            "products": rows,
            "brands": brands(all_rows),
            "selected_brand": brand,
            "weight_units": WEIGHT_UNITS,
            "message": msg,
        },
    )


@app.post("/products/add")
async def products_add(
    sku: str = Form(...),
    name: str = Form(...),
    brand: str = Form(""),
    weight_value: Optional[float] = Form(None),
    weight_unit: str = Form("kg"),
    image_url: str = Form(""),
    cost: float = Form(0.0),
    package_quantity: int = Form(0),
    store: DocumentStore = Depends(get_store),
):
    try:
        await add_product(
            store,
            sku,
            name,
            brand,
            weight_value=weight_value,
            weight_unit=weight_unit,
            image_url=image_url,
            cost=cost,
            package_quantity=package_quantity,
        )
    except (ValueError, StockpickError) as e:
        return RedirectResponse(url=f"/products?msg={quote(str(e))}", status_code=303)
    return RedirectResponse(url="/products?msg=OK", status_code=303)


# ---------------- orders ----------------

@app.get("/orders", response_class=HTMLResponse)
async def orders(
    request: Request,
    status: str = "",
    store: DocumentStore = Depends(get_store),
    progress: PickingProgressStore = Depends(get_progress),
):
    rows = await list_orders(store, status=status or None)
    active = {r["orderId"] for r in progress.list_active()}
    return _render(
        request,
        "orders.html",
        {"orders": rows, "selected_status": status, "in_progress": active},
    )


@app.get("/orders/{order_id}", response_class=HTMLResponse)
async def order_detail(
    request: Request,
    order_id: str,
    store: DocumentStore = Depends(get_store),
    progress: PickingProgressStore = Depends(get_progress),
):
    try:
        session = await PickSession.open(store, order_id, read_only=True)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    products_map = {p.id: p for p in await list_products(store)}
    return _render(
        request,
        "order_detail.html",
        {
            "order": session.order,
            "items": session.items,
            "picked_count": session.picked_count,
            "products": products_map,
            "has_progress": progress.load(order_id) is not None,
        },
    )


@app.get("/orders/{order_id}/pick-list", response_class=FileResponse)
async def order_pick_list(
    order_id: str,
    store: DocumentStore = Depends(get_store),
    export_dir: str = Depends(get_export_dir),
):
    try:
        order = await load_order(store, order_id)
    except OrderNotFoundError:
        raise HTTPException(status_code=404, detail="Order not found")
    items = await load_order_items(store, order_id)
    products_map = {p.id: p for p in await list_products(store)}
    path = generate_pick_list_pdf(order, items, products_map, export_dir)
    return FileResponse(path, filename=Path(path).name, media_type="application/pdf")
