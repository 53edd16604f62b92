import os
from dotenv import load_dotenv

load_dotenv()

# -------- DATABASE --------
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./skymarket.db")

# -------- AUTH --------
JWT_SECRET = os.getenv("JWT_SECRET", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))
ADMIN_SIGNUP_CODE = os.getenv("ADMIN_SIGNUP_CODE")

# -------- SERVICE REGION --------
SERVICE_REGION_CENTER_LAT = float(os.getenv("SERVICE_REGION_CENTER_LAT", 30.2672))
SERVICE_REGION_CENTER_LNG = float(os.getenv("SERVICE_REGION_CENTER_LNG", -97.7431))
SERVICE_REGION_RADIUS_MILES = float(os.getenv("SERVICE_REGION_RADIUS_MILES", 50))

# -------- BOOKING RULES --------
QUOTE_TOLERANCE_CENTS = int(os.getenv("QUOTE_TOLERANCE_CENTS", 1))
CAPTURE_WINDOW_DAYS = int(os.getenv("CAPTURE_WINDOW_DAYS", 7))
DISPUTE_WINDOW_DAYS = int(os.getenv("DISPUTE_WINDOW_DAYS", 14))

# -------- PAYMENTS --------
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "USD")
PAYMENT_PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_PROVIDER_TIMEOUT_SECONDS", 10))
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET")
RAZORPAY_WEBHOOK_SECRET = os.getenv("RAZORPAY_WEBHOOK_SECRET")

# -------- WORKER --------
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# -------- NOTIFICATIONS --------
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
NOTIFICATION_FROM_EMAIL = os.getenv("NOTIFICATION_FROM_EMAIL", "SkyMarket <bookings@skymarket.example>")

# -------- LOGGING --------
LOG_DIR = os.getenv("LOG_DIR", "logs")
