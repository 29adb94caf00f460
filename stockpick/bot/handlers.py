import logging
import shlex
from html import escape
from typing import Dict, Optional

from aiogram import Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import FSInputFile, Message, ReplyKeyboardRemove

from stockpick.bot.keyboards import brands_kb, main_kb
from stockpick.bot.states import ProductAdd, ProfileSet
from stockpick.bot.workspace import Workspace
from stockpick.constants import STATUS_DRAFT, STATUS_PENDING, STATUS_PICKED, UNKNOWN
from stockpick.core.cart import CartStore, check_stock
from stockpick.core.catalog import add_product, brands, get_product, parse_field, update_product
from stockpick.core.orders import (
    OrderEditor,
    OrderSubmission,
    find_order,
    list_orders,
    load_order_items,
    save_user_profile,
)
from stockpick.core.picking import PickItem, PickSession
from stockpick.errors import StockpickError
from stockpick.models import Product
from stockpick.services.pick_list_pdf import generate_pick_list_pdf
from stockpick.utils.formatters import ordered_text, product_line, short_date, status_text
from stockpick.utils.validators import parse_quantity, require_sku

log = logging.getLogger(__name__)

router = Router()


def _is_staff(message: Message, workspace: Workspace) -> bool:
    try:
        return workspace.is_staff(int(message.from_user.id))
    except (AttributeError, TypeError, ValueError):
        return False


def _uid(message: Message) -> int:
    return int(message.from_user.id)


def _user_name(message: Message) -> str:
    u = message.from_user
    return (u.full_name or u.username or UNKNOWN) if u else UNKNOWN


def _args(message: Message) -> list[str]:
    return (message.text or "").split()[1:]


def _rest(message: Message) -> str:
    parts = (message.text or "").split(maxsplit=1)
    return parts[1].strip() if len(parts) > 1 else ""


def _cart_for(message: Message, workspace: Workspace) -> CartStore:
    uid = _uid(message)
    if workspace.editing(uid):
        return workspace.active_cart(uid)
    # create mode: every mutation also refreshes the draft order
    workspace.autosaver(uid, _user_name(message))
    return workspace.cart(uid)


def render_cart(cart: CartStore, products: Dict[str, Product], title: str = "Cart") -> str:
    if cart.is_empty():
        return f"🧺 {title} is empty. Add items: /cart_add SKU [QTY]"

    def key(row):
        p = products.get(row[0])
        return ((p.brand if p else "").lower(), (p.name if p else row[0]).lower())

    lines = [f"🧺 <b>{escape(title)}</b>"]
    for pid, qty in sorted(cart.items(), key=key):
        p = products.get(pid)
        name = escape(f"{p.brand} {p.name}" if p else "unknown product")
        if cart.is_package_mode(pid):
            pack = p.units_per_package if p else 1
            lines.append(f"• {escape(pid)} — {name}: {qty} pkg × {pack} = {qty * pack} pcs")
        else:
            lines.append(f"• {escape(pid)} — {name}: {qty} pcs")
    lines.append("")
    lines.append(f"Lines: {cart.item_count()} | Total: {cart.total_quantity()}")
    return "\n".join(lines)


def _item_line(n: int, item: PickItem, products: Dict[str, Product]) -> str:
    p = products.get(item.product_id)
    name = escape(f"{p.brand} {p.name}" if p else "unknown product")
    mark = "✅" if item.picked else "⬜"
    stock = f" | stock {p.stock_quantity}" if p else ""
    return f"{mark} {n}. {escape(item.product_id)} — {name}\n     ordered {ordered_text(item)}, picked {item.quantity_picked}{stock}"


def render_session(session: PickSession, products: Dict[str, Product]) -> str:
    order = session.order
    lines = [
        f"📦 <b>{escape(order.label)}</b> — {escape(order.store_name)} ({escape(order.created_by_name)})",
        f"Status: {status_text(order.status)} | Picked {session.picked_count}/{len(session.items)}",
    ]
    if order.notes:
        lines.append(f"Order notes: {escape(order.notes)}")
    if session.read_only and order.picking_notes:
        lines.append(f"Picking notes: {escape(order.picking_notes)}")
    elif session.notes:
        lines.append(f"Picking notes: {escape(session.notes)}")
    lines.append("")
    if not session.items:
        lines.append("No items found in this order.")
    for n, item in enumerate(session.items, start=1):
        lines.append(_item_line(n, item, products))
    if session.read_only or session.completed:
        return "\n".join(lines)
    lines.append("")
    if session.can_complete:
        lines.append("All items picked: /pick_done")
    else:
        lines.append("Confirm: /pick_ok N [QTY] | Edit: /pick_edit N | Notes: /pick_notes TEXT")
    return "\n".join(lines)


def _resolve_item(session: PickSession, ref: str) -> str:
    if ref.isdigit() and 1 <= int(ref) <= len(session.items):
        return session.items[int(ref) - 1].doc_id
    return ref


@router.message(Command("start"))
async def cmd_start(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return
    await message.answer("✅ stockpick is running. /help for commands", reply_markup=main_kb())


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext, workspace: Workspace):
    if not _is_staff(message, workspace):
        return
    await state.clear()
    await message.answer("❎ Cancelled.", reply_markup=ReplyKeyboardRemove())


@router.message(Command("help"))
async def cmd_help(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    text = (
        "<b>stockpick — commands</b>\n\n"
        "<b>General</b>\n"
        "/profile — set your name and store\n"
        "/cancel — cancel input\n\n"
        "<b>Products</b>\n"
        "/products [BRAND|all] — catalog\n"
        "/product_add — add product wizard\n"
        "/product_edit SKU FIELD VALUE — name, brand, image, cost, pack, stock\n\n"
        "<b>Cart</b>\n"
        "/cart — show cart\n"
        "/cart_add SKU [QTY]\n"
        "/cart_remove SKU [QTY]\n"
        "/cart_set SKU QTY\n"
        "/cart_pack SKU — toggle units/packages\n"
        "/cart_clear\n"
        "/order_submit [NOTES]\n\n"
        "<b>Orders</b>\n"
        "/orders — waiting for picking\n"
        "/history — all orders\n"
        "/order_edit ORDER — edit your pending order\n"
        "/order_save [NOTES] — save edited order (notes kept if omitted)\n"
        "/order_cancel_edit\n\n"
        "<b>Picking</b>\n"
        "/pick ORDER — start or resume picking\n"
        "/pick_ok N [QTY] — confirm item\n"
        "/pick_edit N — reopen item\n"
        "/pick_notes TEXT\n"
        "/pick_done — complete picking and update stock\n"
        "/pick_view ORDER — read-only view\n"
        "/pick_sheet ORDER — printable pick list\n"
    )
    await message.answer(text)


# ---------------- profile ----------------

@router.message(Command("profile"))
async def cmd_profile(message: Message, state: FSMContext, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    rest = _rest(message)
    if "|" in rest:
        name, store_name = (p.strip() for p in rest.split("|", 1))
        try:
            await save_user_profile(workspace.store, str(_uid(message)), name, store_name)
            await message.answer(f"✅ Profile saved: {escape(name)} / {escape(store_name)}")
        except StockpickError as e:
            await message.answer(f"❌ Could not save profile: {escape(str(e))}")
        return

    await state.set_state(ProfileSet.waiting_name)
    await message.answer("Enter your full name.\nCancel: /cancel", reply_markup=ReplyKeyboardRemove())


@router.message(ProfileSet.waiting_name)
async def profile_wait_name(message: Message, state: FSMContext, workspace: Workspace):
    if not _is_staff(message, workspace):
        return
    name = (message.text or "").strip()
    if not name or name.startswith("/"):
        await message.answer("Enter your name as text. Cancel: /cancel")
        return
    await state.update_data(full_name=name)
    await state.set_state(ProfileSet.waiting_store)
    await message.answer("Enter your store name.\nCancel: /cancel")


@router.message(ProfileSet.waiting_store)
async def profile_wait_store(message: Message, state: FSMContext, workspace: Workspace):
    if not _is_staff(message, workspace):
        return
    store_name = (message.text or "").strip()
    if not store_name or store_name.startswith("/"):
        await message.answer("Enter the store name as text. Cancel: /cancel")
        return
    data = await state.get_data()
    try:
        await save_user_profile(workspace.store, str(_uid(message)), data.get("full_name", UNKNOWN), store_name)
        await message.answer("✅ Profile saved")
    except StockpickError as e:
        await message.answer(f"❌ Could not save profile: {escape(str(e))}")
    finally:
        await state.clear()


# ---------------- products ----------------

@router.message(Command("products"))
async def cmd_products(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    cart = _cart_for(message, workspace)
    arg = _rest(message)
    if arg.lower() == "all":
        cart.set_brand_filter("")
    elif arg:
        cart.set_brand_filter(arg)

    try:
        rows = await workspace.products(cart.brand_filter)
    except StockpickError as e:
        await message.answer(f"❌ {escape(str(e))}")
        return

    if not rows:
        suffix = f" for brand {escape(cart.brand_filter)}" if cart.brand_filter else ""
        await message.answer(f"No products{suffix}. Add one: /product_add")
        return
    title = f"<b>Products</b> ({escape(cart.brand_filter)})" if cart.brand_filter else "<b>Products</b>"
    lines = [title]
    for p in rows:
        in_cart = cart.quantity(p.id)
        mark = f" 🧺{in_cart}" if in_cart else ""
        lines.append(f"• {escape(product_line(p))}{mark}")
    await message.answer("\n".join(lines))


@router.message(Command("product_add"))
async def cmd_product_add(message: Message, state: FSMContext, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    try:
        args = shlex.split(message.text or "")
    except ValueError:
        args = []
    if len(args) >= 4:
        _, sku, name, brand = args[:4]
        try:
            pack = int(args[4]) if len(args) >= 5 else 0
            product = await add_product(workspace.store, require_sku(sku), name, brand, package_quantity=pack)
            await message.answer(f"✅ Product added: {escape(product.id)} {escape(product.name)}")
        except (ValueError, StockpickError) as e:
            await message.answer(f"❌ Could not add product: {escape(str(e))}")
        return

    await state.clear()
    await state.set_state(ProductAdd.waiting_sku)
    await message.answer(
        "Adding a product.\n\n1/4) Enter the SKU\nCancel: /cancel",
        reply_markup=ReplyKeyboardRemove(),
    )


@router.message(ProductAdd.waiting_sku)
async def product_add_sku(message: Message, state: FSMContext, workspace: Workspace):
    if not _is_staff(message, workspace):
        return
    try:
        sku = require_sku(message.text or "")
    except ValueError:
        await message.answer("Enter the SKU as text. Cancel: /cancel")
        return
    await state.update_data(sku=sku)
    await state.set_state(ProductAdd.waiting_brand)
    known = brands(await workspace.products())
    await message.answer("2/4) Enter the BRAND\nCancel: /cancel", reply_markup=brands_kb(known))


@router.message(ProductAdd.waiting_brand)
async def product_add_brand(message: Message, state: FSMContext, workspace: Workspace):
    if not _is_staff(message, workspace):
        return
    brand = (message.text or "").strip()
    if not brand or brand.startswith("/"):
        await message.answer("Enter the brand as text. Cancel: /cancel")
        return
    await state.update_data(brand=brand)
    await state.set_state(ProductAdd.waiting_name)
    await message.answer("3/4) Enter the NAME\nCancel: /cancel", reply_markup=ReplyKeyboardRemove())


@router.message(ProductAdd.waiting_name)
async def product_add_name(message: Message, state: FSMContext, workspace: Workspace):
    if not _is_staff(message, workspace):
        return
    name = (message.text or "").strip()
    if not name or name.startswith("/"):
        await message.answer("Enter the name as text. Cancel: /cancel")
        return
    await state.update_data(name=name)
    await state.set_state(ProductAdd.waiting_pack)
    await message.answer("4/4) Units per package, or '-' if sold by the unit\nCancel: /cancel")


@router.message(ProductAdd.waiting_pack)
async def product_add_pack(message: Message, state: FSMContext, workspace: Workspace):
    if not _is_staff(message, workspace):
        return
    raw = (message.text or "").strip()
    try:
        pack = 0 if raw == "-" else parse_quantity(raw, "package quantity")
    except ValueError:
        await message.answer("Enter a whole number, for example 6, or '-'\nCancel: /cancel")
        return

    data = await state.get_data()
    try:
        product = await add_product(
            workspace.store,
            str(data.get("sku", "")),
            str(data.get("name", "")),
            str(data.get("brand", "")),
            package_quantity=pack,
        )
        await message.answer(f"✅ Product added: {escape(product.id)} {escape(product.name)}")
    except (ValueError, StockpickError) as e:
        await message.answer(f"❌ Could not add product: {escape(str(e))}")
    finally:
        await state.clear()


@router.message(Command("product_edit"))
async def cmd_product_edit(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    parts = (message.text or "").split(maxsplit=3)
    if len(parts) != 4:
        await message.answer("Format: /product_edit SKU FIELD VALUE\nFields: name, brand, image, cost, pack, stock")
        return
    _, sku, field, value = parts
    try:
        key, parsed = parse_field(field, value)
        await update_product(workspace.store, sku, {key: parsed})
    except (ValueError, StockpickError) as e:
        await message.answer(f"❌ {escape(str(e))}")
        return
    await message.answer(f"✅ {escape(sku)}: {key} = {escape(str(parsed))}")


# ---------------- cart ----------------

@router.message(Command("cart"))
async def cmd_cart(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return
    uid = _uid(message)
    cart = _cart_for(message, workspace)
    editing = workspace.editing(uid)
    title = "Cart (editing order)" if editing else "Cart"
    await message.answer(render_cart(cart, await workspace.products_map(), title))


@router.message(Command("cart_add"))
async def cmd_cart_add(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    args = _args(message)
    if not args or len(args) > 2:
        await message.answer("Format: /cart_add SKU [QTY]")
        return
    sku = args[0]
    try:
        qty = parse_quantity(args[1]) if len(args) == 2 else 1
    except ValueError:
        await message.answer("QTY must be a whole number, for example 3")
        return

    product = await get_product(workspace.store, sku)
    if product is None:
        await message.answer(f"❌ Product not found: {escape(sku)}")
        return

    cart = _cart_for(message, workspace)
    warning = check_stock(product, cart.quantity(sku), cart.is_package_mode(sku), qty)
    cart.add(sku, qty)

    unit = "pkg" if cart.is_package_mode(sku) else "pcs"
    text = f"✅ Added {qty} {unit}: {escape(product.brand)} {escape(product.name)} (in cart: {cart.quantity(sku)} {unit})"
    if warning is not None:
        text += f"\n⚠️ {escape(str(warning))}"
    await message.answer(text)


@router.message(Command("cart_remove"))
async def cmd_cart_remove(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    args = _args(message)
    if not args or len(args) > 2:
        await message.answer("Format: /cart_remove SKU [QTY]")
        return
    try:
        qty = parse_quantity(args[1]) if len(args) == 2 else 1
    except ValueError:
        await message.answer("QTY must be a whole number")
        return
    cart = _cart_for(message, workspace)
    cart.remove(args[0], qty)
    await message.answer(f"✅ {escape(args[0])}: {cart.quantity(args[0])} left in cart")


@router.message(Command("cart_set"))
async def cmd_cart_set(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    args = _args(message)
    if len(args) != 2:
        await message.answer("Format: /cart_set SKU QTY")
        return
    sku = args[0]
    try:
        qty = int(args[1])
    except ValueError:
        await message.answer("QTY must be a whole number")
        return

    cart = _cart_for(message, workspace)
    product = await get_product(workspace.store, sku)
    if product is None and qty > 0:
        await message.answer(f"❌ Product not found: {escape(sku)}")
        return
    warning = None
    if qty > 0:
        warning = check_stock(product, 0, cart.is_package_mode(sku), qty)
    cart.set_quantity(sku, qty)
    text = f"✅ {escape(sku)}: {cart.quantity(sku)} in cart"
    if warning is not None:
        text += f"\n⚠️ {escape(str(warning))}"
    await message.answer(text)


@router.message(Command("cart_pack"))
async def cmd_cart_pack(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    args = _args(message)
    if len(args) != 1:
        await message.answer("Format: /cart_pack SKU")
        return
    sku = args[0]
    product = await get_product(workspace.store, sku)
    if product is None:
        await message.answer(f"❌ Product not found: {escape(sku)}")
        return

    cart = _cart_for(message, workspace)
    on = cart.toggle_package_mode(sku)
    if on:
        await message.answer(
            f"📦 {escape(product.name)} is ordered by packages of {product.units_per_package}. "
            f"Cart quantity {cart.quantity(sku)} now counts packages."
        )
    else:
        await message.answer(f"🔹 {escape(product.name)} is ordered by units. Cart quantity {cart.quantity(sku)} now counts units.")


@router.message(Command("cart_clear"))
async def cmd_cart_clear(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return
    cart = _cart_for(message, workspace)
    if cart.is_empty():
        await message.answer("🧺 Cart is already empty")
        return
    cart.clear()
    await message.answer("🧺 Cart cleared")


@router.message(Command("order_submit"))
async def cmd_order_submit(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    uid = _uid(message)
    if workspace.editing(uid):
        await message.answer("You are editing an order. Save it: /order_save or cancel: /order_cancel_edit")
        return

    cart = workspace.cart(uid)
    saver = workspace.autosaver(uid, _user_name(message))
    submission = OrderSubmission(workspace.store, cart, str(uid), autosaver=saver)
    try:
        order = await submission.submit(await workspace.products(), notes=_rest(message))
    except StockpickError as e:
        await message.answer(f"❌ Could not save order: {escape(str(e))}")
        return

    await message.answer(f"✅ Order {escape(order.label)} saved and waiting for picking")


# ---------------- orders ----------------

@router.message(Command("orders"))
async def cmd_orders(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    try:
        orders = await list_orders(workspace.store, status=STATUS_PENDING)
    except StockpickError as e:
        await message.answer(f"❌ {escape(str(e))}")
        return
    if not orders:
        await message.answer("No orders waiting for picking 🎉")
        return

    active = {row["orderId"]: row for row in workspace.progress.list_active()}
    lines = ["<b>Waiting for picking</b>"]
    for o in orders:
        badge = " 📝 progress saved" if o.id in active else ""
        lines.append(
            f"• {escape(o.label)} — {escape(o.store_name)} ({escape(o.created_by_name)}) {short_date(o.created_at)}{badge}"
        )
    lines.append("\nStart: /pick ORDER")
    await message.answer("\n".join(lines))


@router.message(Command("history"))
async def cmd_history(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    mine = _rest(message).lower() == "mine"
    try:
        orders = await list_orders(workspace.store, created_by=str(_uid(message)) if mine else None)
    except StockpickError as e:
        await message.answer(f"❌ {escape(str(e))}")
        return
    if not orders:
        await message.answer("No orders yet")
        return
    lines = ["<b>Orders</b>"]
    for o in orders[:30]:
        lines.append(f"• {escape(o.label)} — {status_text(o.status)} — {escape(o.store_name)} {short_date(o.created_at)}")
    await message.answer("\n".join(lines))


@router.message(Command("order_edit"))
async def cmd_order_edit(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    ref = _rest(message)
    if not ref:
        await message.answer("Format: /order_edit ORDER")
        return

    uid = _uid(message)
    editor = OrderEditor(workspace.store, str(uid))
    try:
        order = await find_order(workspace.store, ref)
        cart = workspace.start_edit(uid, order.id)
        try:
            await editor.open(order.id, cart)
        except StockpickError:
            workspace.stop_edit(uid)
            raise
    except StockpickError as e:
        await message.answer(f"❌ {escape(str(e))}")
        return

    text = render_cart(cart, await workspace.products_map(), f"Editing {order.label}")
    if editor.restored:
        text = "♻️ Unsaved changes restored\n\n" + text
    await message.answer(f"{text}\n\nChange items with /cart_* commands, then /order_save [NOTES]")


@router.message(Command("order_save"))
async def cmd_order_save(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    uid = _uid(message)
    entry = workspace.editing(uid)
    if not entry:
        await message.answer("No order is being edited. Start with /order_edit ORDER")
        return
    order_id, cart = entry
    editor = OrderEditor(workspace.store, str(uid))
    try:
        await editor.save(order_id, cart, await workspace.products(), notes=_rest(message) or None)
    except StockpickError as e:
        await message.answer(f"❌ Could not update order: {escape(str(e))}")
        return
    workspace.stop_edit(uid)
    await message.answer("✅ Order updated")


@router.message(Command("order_cancel_edit"))
async def cmd_order_cancel_edit(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return
    workspace.stop_edit(_uid(message))
    await message.answer("❎ Editing cancelled, order left unchanged")


# ---------------- picking ----------------

async def _open_session(message: Message, workspace: Workspace, ref: str, read_only: bool) -> Optional[PickSession]:
    try:
        order = await find_order(workspace.store, ref)
        if order.status == STATUS_DRAFT:
            await message.answer("❌ Draft orders cannot be picked")
            return None
        read_only = read_only or order.status == STATUS_PICKED
        return await PickSession.open(workspace.store, order.id, workspace.progress, read_only=read_only)
    except StockpickError as e:
        await message.answer(f"❌ {escape(str(e))}")
        return None


@router.message(Command("pick"))
async def cmd_pick(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    ref = _rest(message)
    if not ref:
        await message.answer("Format: /pick ORDER")
        return
    session = await _open_session(message, workspace, ref, read_only=False)
    if session is None:
        return
    if not session.read_only:
        workspace.set_session(_uid(message), session)
    text = render_session(session, await workspace.products_map())
    if session.restored:
        text = "♻️ Saved picking progress restored\n\n" + text
    await message.answer(text)


@router.message(Command("pick_view"))
async def cmd_pick_view(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return
    ref = _rest(message)
    if not ref:
        await message.answer("Format: /pick_view ORDER")
        return
    session = await _open_session(message, workspace, ref, read_only=True)
    if session is not None:
        await message.answer(render_session(session, await workspace.products_map()))


def _current_session(message: Message, workspace: Workspace) -> Optional[PickSession]:
    return workspace.session(_uid(message))


@router.message(Command("pick_ok"))
async def cmd_pick_ok(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    session = _current_session(message, workspace)
    if session is None:
        await message.answer("Open an order first: /pick ORDER")
        return
    args = _args(message)
    if not args or len(args) > 2:
        await message.answer("Format: /pick_ok N [QTY]")
        return
    try:
        qty = int(args[1]) if len(args) == 2 else None
    except ValueError:
        await message.answer("QTY must be a whole number")
        return

    try:
        session.confirm(_resolve_item(session, args[0]), qty)
    except StockpickError as e:
        await message.answer(f"❌ {escape(str(e))}")
        return
    await message.answer("✅ Item marked as picked\n\n" + render_session(session, await workspace.products_map()))


@router.message(Command("pick_edit"))
async def cmd_pick_edit(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    session = _current_session(message, workspace)
    if session is None:
        await message.answer("Open an order first: /pick ORDER")
        return
    args = _args(message)
    if len(args) != 1:
        await message.answer("Format: /pick_edit N")
        return
    try:
        item = session.edit(_resolve_item(session, args[0]))
    except StockpickError as e:
        await message.answer(f"❌ {escape(str(e))}")
        return
    await message.answer(
        f"✏️ Item reopened (picked {item.quantity_picked}). Confirm again: /pick_ok N [QTY]\n\n"
        + render_session(session, await workspace.products_map())
    )


@router.message(Command("pick_notes"))
async def cmd_pick_notes(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    session = _current_session(message, workspace)
    if session is None:
        await message.answer("Open an order first: /pick ORDER")
        return
    try:
        session.set_notes(_rest(message))
    except StockpickError as e:
        await message.answer(f"❌ {escape(str(e))}")
        return
    await message.answer("📝 Picking notes saved")


@router.message(Command("pick_done"))
async def cmd_pick_done(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    session = _current_session(message, workspace)
    if session is None:
        await message.answer("Open an order first: /pick ORDER")
        return

    ok, text = await session.complete()
    if not ok:
        await message.answer(f"❌ {escape(text)}")
        return
    workspace.set_session(_uid(message), None)
    await message.answer(f"✅ {escape(session.order.label)}: {text}")


@router.message(Command("pick_sheet"))
async def cmd_pick_sheet(message: Message, workspace: Workspace):
    if not _is_staff(message, workspace):
        return

    ref = _rest(message)
    if not ref:
        await message.answer("Format: /pick_sheet ORDER")
        return
    try:
        order = await find_order(workspace.store, ref)
        items = await load_order_items(workspace.store, order.id)
        path = generate_pick_list_pdf(order, items, await workspace.products_map(), workspace.export_dir)
    except StockpickError as e:
        await message.answer(f"❌ {escape(str(e))}")
        return
    except OSError as e:
        await message.answer(f"❌ Could not create the PDF: {escape(str(e))}")
        return
    await message.answer_document(FSInputFile(path))
