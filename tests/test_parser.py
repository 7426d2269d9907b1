"""
tests/test_parser.py -- App export parsing.

Covers:
  - well-formed export -> AppUserRecords in order, fields trimmed and stringified
  - non-JSON, non-object, and missing/non-list "users" -> ImportFormatError
  - malformed entries are kept as empty records (the runner counts them)
  - enrollment entries without a courseId are dropped
"""

from __future__ import annotations

import json

import pytest

from importer.models import EnrollmentRef
from importer.parser import ImportFormatError, parse_export, parse_record


def test_parse_export_reads_users_in_order():
    doc = {
        "users": [
            {
                "id": 101,
                "name": " Amina Yusuf ",
                "email": "Amina@Example.com",
                "phone": "+252 63 1234567",
                "country": "SO",
                "city": "Hargeisa",
                "passwordHash": "$2y$10$abc",
                "enrollments": [{"courseId": 7}, {"courseId": "parenting-101"}],
            },
            {"id": "u_2", "name": "Faisal", "email": "faisal@example.com"},
        ]
    }

    records = parse_export(json.dumps(doc))

    assert [r.app_id for r in records] == ["101", "u_2"]
    first = records[0]
    assert first.name == "Amina Yusuf"
    assert first.email == "Amina@Example.com"
    assert first.password_hash == "$2y$10$abc"
    assert first.enrollments == (EnrollmentRef("7"), EnrollmentRef("parenting-101"))
    assert records[1].enrollments == ()
    assert records[1].phone == ""


@pytest.mark.parametrize(
    "content",
    [
        "not json at all",
        "[]",
        '{"people": []}',
        '{"users": {"id": 1}}',
        '"users"',
    ],
)
def test_malformed_document_raises(content):
    with pytest.raises(ImportFormatError, match='Expected "users" array'):
        parse_export(content)


def test_empty_users_array_is_valid():
    assert parse_export('{"users": []}') == []


def test_non_object_entry_becomes_empty_record():
    records = parse_export('{"users": ["just a string", 42]}')

    assert len(records) == 2
    assert records[0].email == ""
    assert records[0].app_id is None


def test_enrollments_without_course_id_are_dropped():
    record = parse_record(
        {
            "email": "a@example.com",
            "enrollments": [{"courseId": ""}, {"other": 1}, "c_3", {"courseId": "c_4"}],
        }
    )

    assert record.enrollments == (EnrollmentRef("c_4"),)


def test_non_list_enrollments_are_ignored():
    record = parse_record({"email": "a@example.com", "enrollments": "c_1"})

    assert record.enrollments == ()


def test_missing_id_maps_to_none():
    assert parse_record({"email": "a@example.com", "id": ""}).app_id is None
    assert parse_record({"email": "a@example.com"}).app_id is None


def test_lone_surrogates_are_replaced():
    records = parse_export('{"users": [{"id": "\\ud800", "name": "\\ud800bad", "email": "bad@example.com"}]}')

    assert records[0].name == "?bad"
    assert records[0].app_id == "?"
