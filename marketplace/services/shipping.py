# marketplace/services/shipping.py
# Тарифы доставки по провинциям ЮАР.

from marketplace.core.config import settings

SHIPPING_RATES = {
    "GAUTENG": 99.0,
    "WESTERN_CAPE": 99.0,
    "KWAZULU_NATAL": 99.0,
    "EASTERN_CAPE": 129.0,
    "FREE_STATE": 129.0,
    "LIMPOPO": 129.0,
    "MPUMALANGA": 129.0,
    "NORTH_WEST": 129.0,
    "NORTHERN_CAPE": 129.0,
}

PROVINCE_DISPLAY_NAMES = {
    "GAUTENG": "Gauteng",
    "WESTERN_CAPE": "Western Cape",
    "KWAZULU_NATAL": "KwaZulu-Natal",
    "EASTERN_CAPE": "Eastern Cape",
    "FREE_STATE": "Free State",
    "LIMPOPO": "Limpopo",
    "MPUMALANGA": "Mpumalanga",
    "NORTH_WEST": "North West",
    "NORTHERN_CAPE": "Northern Cape",
}

PROVINCES = list(SHIPPING_RATES)

MAJOR_PROVINCES = ("GAUTENG", "WESTERN_CAPE", "KWAZULU_NATAL")


def calculate_shipping_fee(province: str | None, subtotal: float) -> float:
    """Бесплатно от порога; без провинции доставка не тарифицируется."""
    if subtotal >= settings.FREE_SHIPPING_THRESHOLD:
        return 0.0
    if not province:
        return 0.0
    return SHIPPING_RATES.get(province, settings.DEFAULT_SHIPPING_RATE)


def province_display_name(province: str) -> str:
    return PROVINCE_DISPLAY_NAMES.get(province, province)


def estimated_delivery_days(province: str) -> str:
    if province in MAJOR_PROVINCES:
        return "3-5 business days"
    return "5-7 business days"
