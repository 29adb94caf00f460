from typing import Iterable

from aiogram.types import KeyboardButton, ReplyKeyboardMarkup


def main_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text="/cart"), KeyboardButton(text="/products")],
            [KeyboardButton(text="/orders"), KeyboardButton(text="/history")],
            [KeyboardButton(text="/help")],
        ],
        resize_keyboard=True,
    )


def brands_kb(brands: Iterable[str]) -> ReplyKeyboardMarkup:
    rows = [[KeyboardButton(text=b)] for b in brands]
    rows.append([KeyboardButton(text="/cancel")])
    return ReplyKeyboardMarkup(keyboard=rows, resize_keyboard=True, one_time_keyboard=True)
