from aiogram.fsm.state import State, StatesGroup


class ProductAdd(StatesGroup):
    waiting_sku = State()
    waiting_brand = State()
    waiting_name = State()
    waiting_pack = State()


class ProfileSet(StatesGroup):
    waiting_name = State()
    waiting_store = State()
