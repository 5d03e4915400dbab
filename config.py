# config.py
import os
from dotenv import load_dotenv

load_dotenv()

# --- CONFIGURACIÓN DE BASE DE DATOS ---
DATABASE_URL = os.getenv("DATABASE_URL")

# --- CONFIGURACIÓN DE CELERY ---
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")

# --- CONFIGURACIÓN DE NUBEFACT ---
NUBEFACT_API_URL = os.getenv("NUBEFACT_API_URL", "https://api.nubefact.com/api/v1")
NUBEFACT_TOKEN = os.getenv("NUBEFACT_TOKEN")
NUBEFACT_AUTH_SCHEME = os.getenv("NUBEFACT_AUTH_SCHEME", "Token")

# Tiempos máximos por llamada (segundos)
CREATE_TIMEOUT_SECONDS = 30
QUERY_TIMEOUT_SECONDS = 15

# Las fechas se envían en el calendario local de SUNAT
GATEWAY_TIMEZONE = "America/Lima"

# --- DETECTOR Y POLLING ---
DETECTOR_INTERVAL_SECONDS = int(os.getenv("DETECTOR_INTERVAL_SECONDS", "30"))
POLLING_INTERVAL_SECONDS = int(os.getenv("POLLING_INTERVAL_SECONDS", "30"))
# 720 intentos * 30s = 6 horas
POLLING_MAX_ATTEMPTS = int(os.getenv("POLLING_MAX_ATTEMPTS", "720"))
# Un comprobante en cola más de este tiempo se vuelve a publicar
QUEUED_STALE_SECONDS = int(os.getenv("QUEUED_STALE_SECONDS", "300"))

# --- NOTIFICACIONES ---
NOTIFICATION_WEBHOOK_URL = os.getenv("NOTIFICATION_WEBHOOK_URL")
NOTIFICATION_TIMEOUT_SECONDS = 10
