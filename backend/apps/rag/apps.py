from django.apps import AppConfig


class RagConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.rag'
    verbose_name = 'Retrieval'

    def ready(self):
        """Register signal handlers that enqueue embedding generation on save."""
        from apps.rag import embedding_hooks  # noqa: F401
