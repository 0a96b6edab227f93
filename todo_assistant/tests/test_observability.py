import structlog

from src.assistant.observability import setup_logging


def test_bound_context_is_merged_first():
    setup_logging("INFO", "json", service_name="svc-test")
    try:
        processors = structlog.get_config()["processors"]
        assert processors[0] is structlog.contextvars.merge_contextvars

        with structlog.contextvars.bound_contextvars(user_id=7):
            event = processors[0](None, "info", {"event": "model_replied"})
        assert event == {"service": "svc-test", "user_id": 7, "event": "model_replied"}
    finally:
        setup_logging()
