import os
from decimal import Decimal
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'insecure-development-key')

DEBUG = os.environ.get('DJANGO_DEBUG', 'false').lower() in ('1', 'true', 'yes')

ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'rest_framework',
    'coreapp',
    'accountapp',
    'vehicleapp',
    'promoapp',
    'notificationapp',
    'bookingapp',
    'payoutapp',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
]

ROOT_URLCONF = 'rentalhub.urls'

WSGI_APPLICATION = 'rentalhub.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': os.environ.get('DATABASE_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.environ.get('DATABASE_NAME', str(BASE_DIR / 'db.sqlite3')),
        'USER': os.environ.get('DATABASE_USER', ''),
        'PASSWORD': os.environ.get('DATABASE_PASSWORD', ''),
        'HOST': os.environ.get('DATABASE_HOST', ''),
        'PORT': os.environ.get('DATABASE_PORT', ''),
    }
}

AUTH_USER_MODEL = 'accountapp.User'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'EXCEPTION_HANDLER': 'coreapp.exceptions.domain_exception_handler',
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        name: {
            'handlers': ['console'],
            'level': os.environ.get('LOG_LEVEL', 'INFO'),
            'propagate': False,
        }
        for name in ('coreapp', 'accountapp', 'vehicleapp', 'promoapp',
                     'notificationapp', 'bookingapp', 'payoutapp')
    },
}

# Engine defaults. Any key can be overridden at runtime through GlobalSetting rows.
RENTALHUB = {
    'CURRENCY': os.environ.get('RENTALHUB_CURRENCY', 'GHS'),
    'Booking:PlatformFeePercentage': Decimal('15.0'),
    'Booking:DefaultDriverDailyRate': Decimal('45.00'),
    'Booking:TurnaroundBufferHours': 4,
    'Booking:AdjustmentThreshold': Decimal('0.01'),
    'Booking:UnpaidTimeoutHours': 4,
    'Booking:DepositRefundDueDays': 2,
    'Vehicle:DefaultMileageAllowancePerDay': 600,
    'Vehicle:DefaultExtraKmRate': Decimal('0.30'),
    'Mileage:ChargingEnabled': True,
    'Payout:InstantWithdrawalFeePercentage': Decimal('3.0'),
}
