"""
Django settings for config project.
"""
import os
from pathlib import Path
from django.core.exceptions import ImproperlyConfigured

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# ==========================================
# 1. CORE SETTINGS
# ==========================================

# Lee la secret key del entorno, o usa una insegura solo si no existe (para dev)
SECRET_KEY = os.environ.get('SECRET_KEY', 'django-insecure-dev-key-change-in-prod')

# DEBUG debe ser True solo si la variable es 'True'
DEBUG = os.environ.get('DEBUG', 'True') == 'True'


# ==========================================
# 2. INSTALLED APPS
# ==========================================
INSTALLED_APPS = [
    # Local Apps (Módulos)
    "core",
    "sales",
    "finance",
    "documents",
]


# ==========================================
# 3. DATABASE
# ==========================================
# Los registros viven en el backend remoto (Backendless); el motor recibe
# snapshots ya consultados y no usa base de datos propia.
DATABASES = {}


# ==========================================
# 4. LOCALIZATION
# ==========================================
LANGUAGE_CODE = 'es-mx'
TIME_ZONE = os.environ.get('TIME_ZONE', 'America/Mexico_City')
USE_I18N = True
USE_TZ = True


# ==========================================
# 5. LOGGING
# ==========================================
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        app: {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False}
        for app in ("core", "sales", "finance", "documents")
    },
}


# ==========================================
# 6. CLG (CERTIFICADOS DE LIBERTAD DE GRAVAMEN)
# ==========================================
# Días antes del vencimiento en que un CLG pasa a "Por Vencer"
CLG_EXPIRY_WARNING_DAYS = int(os.environ.get('CLG_EXPIRY_WARNING_DAYS', '10'))
# Ventana del filtro "próximos a vencer" del tablero (no es un estado)
CLG_UPCOMING_WINDOW_DAYS = int(os.environ.get('CLG_UPCOMING_WINDOW_DAYS', '30'))
# Alertas con prioridad alta cuando faltan estos días o menos
CLG_URGENT_WINDOW_DAYS = int(os.environ.get('CLG_URGENT_WINDOW_DAYS', '7'))
# Antigüedad máxima aceptada para un vencimiento al capturar un CLG
CLG_MAX_EXPIRED_AGE_DAYS = int(os.environ.get('CLG_MAX_EXPIRED_AGE_DAYS', '365'))

if CLG_EXPIRY_WARNING_DAYS < 0:
    raise ImproperlyConfigured("CLG_EXPIRY_WARNING_DAYS no puede ser negativo.")
if not 0 <= CLG_URGENT_WINDOW_DAYS <= CLG_UPCOMING_WINDOW_DAYS:
    raise ImproperlyConfigured(
        "CLG_URGENT_WINDOW_DAYS debe estar entre 0 y CLG_UPCOMING_WINDOW_DAYS."
    )
