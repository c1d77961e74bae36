"""
Structured logging helpers
"""
import logging

from cdc_admin.core.logging_config import CDCLogger, safe_extra


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def make_logger(name: str):
    log = CDCLogger(name)
    log.setLevel(logging.INFO)
    handler = ListHandler()
    log.addHandler(handler)
    return log, handler


def test_safe_extra_prefixes_record_attributes():
    assert safe_extra({"created": 2, "failed": 1, "message": "x"}) == {
        "ctx_created": 2, "failed": 1, "ctx_message": "x",
    }


def test_domain_event_accepts_reserved_names():
    log, handler = make_logger("cdc_admin.tests.domain")

    log.log_domain_event("Attendance", "bulk_marked", created=3, updated=1, name="ACAD Morning")

    record = handler.records[0]
    assert record.getMessage() == "[Attendance] bulk_marked"
    assert record.ctx_created == 3
    assert record.updated == 1
    assert record.ctx_name == "ACAD Morning"
    assert record.name == "cdc_admin.tests.domain"
    assert record.domain_event == "bulk_marked"
