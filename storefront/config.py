import os


def env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


APP_NAME = os.getenv("APP_NAME", "Wazobia")
SERVER_URL = os.getenv("SERVER_URL", "http://localhost:3000").rstrip("/")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

PAGE_SIZE = int(os.getenv("PAGE_SIZE", "9"))
FREE_SHIPPING_MIN_PRICE = float(os.getenv("FREE_SHIPPING_MIN_PRICE", "35"))

CURRENCY_CODE = "USD"
CURRENCY_SYMBOL = "$"

# Fixed rate, not an admin setting
TAX_RATE = 0.15

# Stock is decremented when an order is paid. Turn off for local/dev databases
# that are seeded without realistic inventory.
ENABLE_INVENTORY_DECREMENT = env_bool("ENABLE_INVENTORY_DECREMENT", "true")

# Seconds; 0 keeps entries until explicitly invalidated
SETTINGS_CACHE_TTL = float(os.getenv("SETTINGS_CACHE_TTL", "0"))
ORDER_CACHE_TTL = float(os.getenv("ORDER_CACHE_TTL", "300"))

EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "smtp").strip().lower()  # smtp | resend | console
SENDER_NAME = os.getenv("SENDER_NAME", "support")
SENDER_EMAIL = os.getenv("SENDER_EMAIL", "onboarding@resend.dev")
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")

PAYPAL_API_URL = os.getenv("PAYPAL_API_URL", "https://api-m.sandbox.paypal.com").rstrip("/")
PAYPAL_CLIENT_ID = os.getenv("PAYPAL_CLIENT_ID", "")
PAYPAL_CLIENT_SECRET = os.getenv("PAYPAL_CLIENT_SECRET", "")

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", "")

AVAILABLE_PAYMENT_METHODS = [
    {"name": "PayPal", "commission": 0, "is_default": True},
    {"name": "Stripe", "commission": 0, "is_default": True},
    {"name": "Cash On Delivery", "commission": 0, "is_default": True},
]
DEFAULT_PAYMENT_METHOD = os.getenv("DEFAULT_PAYMENT_METHOD", AVAILABLE_PAYMENT_METHODS[2]["name"])

AVAILABLE_DELIVERY_DATES = [
    {
        "name": "Tomorrow",
        "days_to_deliver": 1,
        "shipping_price": 12.9,
        "free_shipping_min_price": 0,
    },
    {
        "name": "Next 3 days",
        "days_to_deliver": 3,
        "shipping_price": 6.9,
        "free_shipping_min_price": 0,
    },
    {
        "name": "Next 5 days",
        "days_to_deliver": 5,
        "shipping_price": 4.9,
        "free_shipping_min_price": FREE_SHIPPING_MIN_PRICE,
    },
]
