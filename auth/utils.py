import html
import logging
import smtplib
from datetime import datetime, timedelta, timezone
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from config.settings import settings
from database import user_collection

logger = logging.getLogger(__name__)

# --- Security & JWT Configuration ---
SECRET_KEY = settings.JWT_SECRET_KEY
ALGORITHM = settings.JWT_ALGORITHM
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


# --- Password Hashing Functions ---
def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password)


# --- JWT Token Creation ---
def create_access_token(data: dict, expires_delta: timedelta | None = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def _user_from_token(token: str):
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    email = payload.get("sub")
    if email is None:
        return None
    return user_collection.find_one({"email": email})


# --- User Authentication Functions ---
def get_current_user(token: str = Depends(oauth2_scheme)):
    user = _user_from_token(token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def get_optional_user(token: str | None = Depends(optional_oauth2_scheme)):
    """Current user when a valid bearer token is sent, otherwise None."""
    if not token:
        return None
    return _user_from_token(token)


def require_admin(current_user: dict = Depends(get_current_user)):
    if not current_user.get("is_admin"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


def is_admin_email(email: str) -> bool:
    return email.lower() in settings.ADMIN_EMAILS


# --- Email Sending Functions ---
def send_email(to_email: str, subject: str, html: str) -> bool:
    """Send over SMTP; without SMTP_HOST the message is only logged."""
    if not settings.SMTP_HOST:
        logger.info(f"SMTP not configured, email to {to_email} not sent: {subject}")
        return True

    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = settings.EMAIL_FROM
    message["To"] = to_email
    message.attach(MIMEText(html, "html"))

    try:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
            server.starttls()
            if settings.SMTP_USER:
                server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            server.sendmail(settings.EMAIL_FROM, to_email, message.as_string())
        logger.info(f"Email sent to {to_email}: {subject}")
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.warning(f"Failed to send email to {to_email}: {e}")
        return False


def send_password_reset_email(email: str, name: str, token: str) -> bool:
    reset_link = f"{settings.FRONTEND_URL}/reset-password?token={token}"
    if not settings.SMTP_HOST:
        logger.info(f"Password reset link for {email}: {reset_link}")
    body = f"""
    <html><body>
        <p>Hi {html.escape(name)},</p>
        <p>A password reset was requested for your {settings.APP_NAME} account.</p>
        <p>Click the link below to set a new password. This link is valid for {settings.RESET_TOKEN_TTL_MINUTES} minutes.</p>
        <a href="{html.escape(reset_link, quote=True)}">Reset Your Password</a>
        <p>If you did not request this, please disregard this email.</p>
    </body></html>
    """
    return send_email(email, "Password Reset Request", body)


def send_password_changed_email(email: str, name: str) -> bool:
    body = f"""
    <html><body>
        <p>Hi {html.escape(name)},</p>
        <p>The password for your {settings.APP_NAME} account was just changed.</p>
        <p>If this wasn't you, reset your password immediately and contact support.</p>
    </body></html>
    """
    return send_email(email, "Your password was changed", body)


def send_cart_reminder_email(email: str, recovery_link: str, items_count: int, total: float) -> bool:
    body = f"""
    <html><body>
        <p>You left {items_count} item(s) worth ₹{total:g} in your cart.</p>
        <p><a href="{html.escape(recovery_link, quote=True)}">Pick up where you left off</a></p>
    </body></html>
    """
    return send_email(email, "You left something in your cart", body)
