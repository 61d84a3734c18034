"""
Development settings
"""
from .base import *

DEBUG = True

ALLOWED_HOSTS = env.list('ALLOWED_HOSTS', default=['localhost', '127.0.0.1', '0.0.0.0'])

# Use the brute-force search unless the local database has pgvector installed
EMBEDDING_SEARCH_BACKEND = env('EMBEDDING_SEARCH_BACKEND', default='in_memory')

# Embed incidents and runbook fragments on save
RAG_AUTO_EMBED = env.bool('RAG_AUTO_EMBED', default=True)

# Run tasks inline for local dev (no worker needed)
CELERY_TASK_ALWAYS_EAGER = env.bool('CELERY_TASK_ALWAYS_EAGER', default=True)

# Logging
LOGGING = LOGGING.copy()
LOGGING['handlers']['console']['formatter'] = 'verbose'
LOGGING['loggers']['apps']['level'] = 'DEBUG'
