"""
Integration tests for the domain handlers against a temporary legacy store.

Tests cover:
- Terms of use create/update/delete, including the delete cascade
- Resource terms create/update/delete and set reconciliation
- User agreement eligibility gates
- Docusign envelope create/update
- Rollback and failure reports for each family
"""

import pytest

from processor.legacy_terms_processor.apply import RouteOutcome

from .helpers import SUBMITTER_ROLE_ID, TOPICS, envelope, make_record

ENVELOPE_ID = "0f8fad5b-d9cb-469f-a165-70867728950e"


async def send(router, topic, payload):
    """Route one well-formed event and return its result."""
    return await router.route(make_record(topic, envelope(topic, payload)))


def terms_payload(terms_id=5001, agreeability=3, **overrides):
    payload = {
        "id": terms_id,
        "typeId": 1,
        "title": "Standard Terms",
        "text": "You agree to ...",
        "url": "https://example.com/terms",
        "agreeabilityTypeId": agreeability,
        "created": "2026-10-01T12:30:45.000Z",
        "updated": "2026-10-02T09:00:00.000Z",
    }
    payload.update(overrides)
    return payload


def resource_payload(terms_ids, tag="Submitter", project="900", **overrides):
    payload = {
        "reference": "project",
        "referenceId": project,
        "tag": tag,
        "termsOfUseIds": terms_ids,
        "created": "2026-10-01T00:00:00.000Z",
        "updated": "2026-10-01T00:00:00.000Z",
    }
    payload.update(overrides)
    return payload


class TestTermsOfUse:
    """Tests for terms of use handlers."""

    @pytest.mark.asyncio
    async def test_create(self, router, store):
        result = await send(router, TOPICS.terms_created, terms_payload())

        assert result.outcome == RouteOutcome.APPLIED
        rows = store.rows(
            "SELECT terms_of_use_id, title, terms_of_use_agreeability_type_id, create_date, "
            "modify_date FROM terms_of_use WHERE terms_of_use_id = 5001"
        )
        assert rows == [(5001, "Standard Terms", 3, "2026-10-01 12:30:45", "2026-10-01 12:30:45")]
        assert store.count("terms_of_use_docusign_template_xref") == 0

    @pytest.mark.asyncio
    async def test_create_docusignable_links_template(self, router, store):
        payload = terms_payload(agreeability=4, docusignTemplateId="tmpl-1")

        result = await send(router, TOPICS.terms_created, payload)

        assert result.outcome == RouteOutcome.APPLIED
        assert store.rows("SELECT * FROM terms_of_use_docusign_template_xref") == [(5001, "tmpl-1")]

    @pytest.mark.asyncio
    async def test_create_template_ignored_for_other_types(self, router, store):
        payload = terms_payload(agreeability=3, docusignTemplateId="tmpl-1")

        await send(router, TOPICS.terms_created, payload)

        assert store.count("terms_of_use_docusign_template_xref") == 0

    @pytest.mark.asyncio
    async def test_create_with_unknown_type_rolls_back_and_reports(self, router, store, reports):
        result = await send(router, TOPICS.terms_created, terms_payload(typeId=99))

        assert result.outcome == RouteOutcome.FAILED
        assert store.count("terms_of_use") == 0

        sent = reports()
        assert len(sent) == 1
        assert sent[0]["payload"]["message"] == (
            "terms_of_use_type records matching conditions "
            "{'terms_of_use_type_id': 99} does not exist"
        )
        assert sent[0]["payload"]["subject"] == "Terms of use error subject"
        assert sent[0]["payload"]["id"] == 5001

    @pytest.mark.asyncio
    async def test_update_fields(self, router, store):
        store.add_terms(5001)

        payload = terms_payload(title="Revised Terms", url=None)
        result = await send(router, TOPICS.terms_updated, payload)

        assert result.outcome == RouteOutcome.APPLIED
        rows = store.rows(
            "SELECT title, url, create_date, modify_date FROM terms_of_use "
            "WHERE terms_of_use_id = 5001"
        )
        assert rows == [("Revised Terms", None, "2026-10-01 12:30:45", "2026-10-02 09:00:00")]

    @pytest.mark.asyncio
    async def test_update_inserts_then_updates_then_removes_template(self, router, store):
        store.add_terms(5001)

        await send(router, TOPICS.terms_updated, terms_payload(agreeability=4, docusignTemplateId="a"))
        assert store.rows("SELECT * FROM terms_of_use_docusign_template_xref") == [(5001, "a")]

        await send(router, TOPICS.terms_updated, terms_payload(agreeability=4, docusignTemplateId="b"))
        assert store.rows("SELECT * FROM terms_of_use_docusign_template_xref") == [(5001, "b")]

        await send(router, TOPICS.terms_updated, terms_payload(agreeability=3))
        assert store.count("terms_of_use_docusign_template_xref") == 0

    @pytest.mark.asyncio
    async def test_update_missing_terms_fails(self, router, store, reports):
        result = await send(router, TOPICS.terms_updated, terms_payload(terms_id=404))

        assert result.outcome == RouteOutcome.FAILED
        assert len(reports()) == 1
        assert "does not exist" in reports()[0]["payload"]["message"]

    @pytest.mark.asyncio
    async def test_delete_cascades_to_every_dependent_relation(self, router, store):
        store.add_terms(7)
        store.add_terms(8)
        store.add_terms(9)
        store.execute("INSERT INTO terms_of_use_docusign_template_xref VALUES (7, 't7'), (8, 't8')")
        store.execute("INSERT INTO terms_of_use_dependency VALUES (7, 8), (9, 7), (9, 8)")
        store.execute(
            "INSERT INTO project_role_terms_of_use_xref (project_id, resource_role_id, terms_of_use_id) "
            "VALUES (900, 1, 7), (900, 1, 8)"
        )
        store.execute("INSERT INTO user_terms_of_use_xref (user_id, terms_of_use_id) VALUES (42, 7), (42, 8)")
        store.execute("INSERT INTO user_terms_of_use_ban_xref (user_id, terms_of_use_id) VALUES (43, 7)")

        result = await send(router, TOPICS.terms_deleted, {"termsOfUseId": 7})

        assert result.outcome == RouteOutcome.APPLIED
        assert store.count("terms_of_use", "terms_of_use_id = 7") == 0
        assert store.count("terms_of_use_docusign_template_xref", "terms_of_use_id = 7") == 0
        assert store.count(
            "terms_of_use_dependency",
            "dependent_terms_of_use_id = 7 OR dependency_terms_of_use_id = 7",
        ) == 0
        assert store.count("project_role_terms_of_use_xref", "terms_of_use_id = 7") == 0
        assert store.count("user_terms_of_use_xref", "terms_of_use_id = 7") == 0
        assert store.count("user_terms_of_use_ban_xref", "terms_of_use_id = 7") == 0

        # Unrelated rows survive
        assert store.count("terms_of_use") == 2
        assert store.rows("SELECT * FROM terms_of_use_dependency") == [(9, 8)]
        assert store.count("project_role_terms_of_use_xref") == 1
        assert store.count("user_terms_of_use_xref") == 1

    @pytest.mark.asyncio
    async def test_delete_missing_terms_fails(self, router, reports):
        result = await send(router, TOPICS.terms_deleted, {"termsOfUseId": 404})

        assert result.outcome == RouteOutcome.FAILED
        assert reports()[0]["payload"]["termsOfUseId"] == 404


class TestResourceTerms:
    """Tests for resource terms handlers."""

    def assignments(self, store, project=900, role=SUBMITTER_ROLE_ID):
        return store.rows(
            "SELECT rowid, terms_of_use_id, create_date, modify_date "
            "FROM project_role_terms_of_use_xref "
            "WHERE project_id = ? AND resource_role_id = ? ORDER BY terms_of_use_id",
            (project, role),
        )

    @pytest.fixture
    def terms(self, store):
        for terms_id in (10, 11, 12, 13):
            store.add_terms(terms_id)

    @pytest.mark.asyncio
    async def test_create(self, router, store, terms):
        result = await send(router, TOPICS.resource_terms_created, resource_payload([10, 11]))

        assert result.outcome == RouteOutcome.APPLIED
        rows = self.assignments(store)
        assert [row[1] for row in rows] == [10, 11]
        assert rows[0][2] == "2026-10-01 00:00:00"

    @pytest.mark.asyncio
    async def test_update_reconciles_without_touching_kept_rows(self, router, store, terms):
        await send(router, TOPICS.resource_terms_created, resource_payload([10, 11]))
        kept_before = [row for row in self.assignments(store) if row[1] == 11]

        result = await send(
            router,
            TOPICS.resource_terms_updated,
            resource_payload([11, 12], created="2026-10-05T00:00:00Z", updated="2026-10-06T00:00:00Z"),
        )

        assert result.outcome == RouteOutcome.APPLIED
        rows = self.assignments(store)
        assert [row[1] for row in rows] == [11, 12]
        assert [row for row in rows if row[1] == 11] == kept_before
        added = [row for row in rows if row[1] == 12][0]
        assert added[2:] == ("2026-10-05 00:00:00", "2026-10-06 00:00:00")

    @pytest.mark.asyncio
    async def test_update_twice_writes_nothing_the_second_time(self, router, store, terms):
        await send(router, TOPICS.resource_terms_updated, resource_payload([10, 12]))
        before = self.assignments(store)

        result = await send(
            router,
            TOPICS.resource_terms_updated,
            resource_payload([12, 10], updated="2026-12-31T00:00:00Z"),
        )

        assert result.outcome == RouteOutcome.APPLIED
        assert self.assignments(store) == before

    @pytest.mark.asyncio
    async def test_update_is_scoped_to_project_and_role(self, router, store, terms):
        await send(router, TOPICS.resource_terms_created, resource_payload([10], tag="Reviewer"))
        await send(router, TOPICS.resource_terms_created, resource_payload([10], project="901"))

        await send(router, TOPICS.resource_terms_updated, resource_payload([11]))

        assert [row[1] for row in self.assignments(store)] == [11]
        assert store.count("project_role_terms_of_use_xref") == 3

    @pytest.mark.asyncio
    async def test_create_existing_assignment_fails_without_partial_writes(
        self, router, store, terms, reports
    ):
        await send(router, TOPICS.resource_terms_created, resource_payload([12]))

        result = await send(router, TOPICS.resource_terms_created, resource_payload([12, 13]))

        assert result.outcome == RouteOutcome.FAILED
        assert [row[1] for row in self.assignments(store)] == [12]
        sent = reports()
        assert len(sent) == 1
        assert sent[0]["payload"]["message"].startswith("The following resource terms already exist")
        assert sent[0]["payload"]["subject"] == "Resource Terms error subject"
        assert sent[0]["payload"]["termsOfUseIds"] == [12, 13]

    @pytest.mark.asyncio
    async def test_unknown_terms_ids_are_named(self, router, store, terms, reports):
        result = await send(router, TOPICS.resource_terms_created, resource_payload([10, 98, 99]))

        assert result.outcome == RouteOutcome.FAILED
        assert store.count("project_role_terms_of_use_xref") == 0
        assert reports()[0]["payload"]["message"] == "The following terms doesn't exist: [98, 99]"

    @pytest.mark.asyncio
    async def test_unknown_tag_fails(self, router, store, terms, reports):
        result = await send(router, TOPICS.resource_terms_created, resource_payload([10], tag="Nobody"))

        assert result.outcome == RouteOutcome.FAILED
        assert "resource_role_lu records matching conditions" in reports()[0]["payload"]["message"]

    @pytest.mark.asyncio
    async def test_delete_removes_only_requested_terms(self, router, store, terms):
        await send(router, TOPICS.resource_terms_created, resource_payload([10, 11, 12]))

        result = await send(router, TOPICS.resource_terms_deleted, resource_payload([10, 12]))

        assert result.outcome == RouteOutcome.APPLIED
        assert [row[1] for row in self.assignments(store)] == [11]


class TestUserAgreement:
    """Tests for the user agreement handler and its gates."""

    def agreements(self, store, user_id=42):
        return store.rows(
            "SELECT terms_of_use_id FROM user_terms_of_use_xref WHERE user_id = ? "
            "ORDER BY terms_of_use_id",
            (user_id,),
        )

    @pytest.mark.asyncio
    async def test_agree_then_duplicate_rejected(self, router, store, reports):
        await send(router, TOPICS.terms_created, terms_payload(terms_id=5001, agreeability=3))

        first = await send(router, TOPICS.user_agreed, {"userId": 42, "termsOfUseId": 5001})
        second = await send(router, TOPICS.user_agreed, {"userId": 42, "termsOfUseId": 5001})

        assert first.outcome == RouteOutcome.APPLIED
        assert second.outcome == RouteOutcome.FAILED
        assert self.agreements(store) == [(5001,)]
        assert [r["payload"]["message"] for r in reports()] == [
            "User with id 42 has already agreed to terms with id 5001"
        ]

    @pytest.mark.asyncio
    async def test_not_electronically_agreeable(self, router, store, reports):
        store.add_terms(60, agreeability_type_id=4)

        result = await send(router, TOPICS.user_agreed, {"userId": 42, "termsOfUseId": 60})

        assert result.outcome == RouteOutcome.FAILED
        assert self.agreements(store) == []
        assert reports()[0]["payload"]["message"] == (
            "The term with id 60 is not electronically agreeable."
        )
        assert reports()[0]["payload"]["subject"] == "User terms of use error subject"

    @pytest.mark.asyncio
    async def test_unmet_dependency_rejected(self, router, store):
        store.add_terms(20)
        store.add_terms(21)
        store.execute("INSERT INTO terms_of_use_dependency VALUES (20, 21)")

        rejected = await send(router, TOPICS.user_agreed, {"userId": 42, "termsOfUseId": 20})
        assert rejected.outcome == RouteOutcome.FAILED

        await send(router, TOPICS.user_agreed, {"userId": 42, "termsOfUseId": 21})
        accepted = await send(router, TOPICS.user_agreed, {"userId": 42, "termsOfUseId": 20})

        assert accepted.outcome == RouteOutcome.APPLIED
        assert self.agreements(store) == [(20,), (21,)]

    @pytest.mark.asyncio
    async def test_dependency_of_another_user_does_not_count(self, router, store):
        store.add_terms(20)
        store.add_terms(21)
        store.execute("INSERT INTO terms_of_use_dependency VALUES (20, 21)")
        store.execute("INSERT INTO user_terms_of_use_xref (user_id, terms_of_use_id) VALUES (7, 21)")

        result = await send(router, TOPICS.user_agreed, {"userId": 42, "termsOfUseId": 20})

        assert result.outcome == RouteOutcome.FAILED

    @pytest.mark.asyncio
    async def test_dependency_check_is_one_hop(self, router, store):
        for terms_id in (30, 31, 32):
            store.add_terms(terms_id)
        store.execute("INSERT INTO terms_of_use_dependency VALUES (30, 31), (31, 32)")

        # Direct dependency satisfied, its own dependency not: accepted
        store.execute("INSERT INTO user_terms_of_use_xref (user_id, terms_of_use_id) VALUES (42, 31)")
        accepted = await send(router, TOPICS.user_agreed, {"userId": 42, "termsOfUseId": 30})
        assert accepted.outcome == RouteOutcome.APPLIED

        # Only the two-hop dependency satisfied: rejected
        store.execute("INSERT INTO user_terms_of_use_xref (user_id, terms_of_use_id) VALUES (43, 32)")
        rejected = await send(router, TOPICS.user_agreed, {"userId": 43, "termsOfUseId": 30})
        assert rejected.outcome == RouteOutcome.FAILED

    @pytest.mark.asyncio
    async def test_banned_user_rejected(self, router, store, reports):
        store.add_terms(50)
        store.execute("INSERT INTO user_terms_of_use_ban_xref (user_id, terms_of_use_id) VALUES (42, 50)")

        result = await send(router, TOPICS.user_agreed, {"userId": 42, "termsOfUseId": 50})

        assert result.outcome == RouteOutcome.FAILED
        assert self.agreements(store) == []
        assert reports()[0]["payload"]["message"] == (
            "User with id 42 is banned from agreeing to terms with id 50"
        )

    @pytest.mark.asyncio
    async def test_type_gate_checked_before_ban_gate(self, router, store, reports):
        store.add_terms(51, agreeability_type_id=1)
        store.execute("INSERT INTO user_terms_of_use_ban_xref (user_id, terms_of_use_id) VALUES (42, 51)")

        await send(router, TOPICS.user_agreed, {"userId": 42, "termsOfUseId": 51})

        assert "not electronically agreeable" in reports()[0]["payload"]["message"]

    @pytest.mark.asyncio
    async def test_unknown_terms_fails(self, router, store, reports):
        result = await send(router, TOPICS.user_agreed, {"userId": 42, "termsOfUseId": 404})

        assert result.outcome == RouteOutcome.FAILED
        assert "terms_of_use records matching conditions" in reports()[0]["payload"]["message"]

    @pytest.mark.asyncio
    async def test_agreement_dates(self, router, store):
        store.add_terms(5001)

        await send(
            router,
            TOPICS.user_agreed,
            {"userId": 42, "termsOfUseId": 5001, "created": "2026-10-17T08:15:00.000Z"},
        )

        assert store.rows("SELECT create_date, modify_date FROM user_terms_of_use_xref") == [
            ("2026-10-17 08:15:00", "2026-10-17 08:15:00")
        ]


class TestDocusignEnvelope:
    """Tests for docusign envelope handlers."""

    def completed(self, store):
        return store.rows(
            "SELECT is_completed FROM docusign_envelope WHERE docusign_envelope_id = ?",
            (ENVELOPE_ID,),
        )

    async def create(self, router):
        return await send(
            router,
            TOPICS.envelope_created,
            {"id": ENVELOPE_ID, "docusignTemplateId": "tmpl-1", "userId": 42, "isCompleted": 0},
        )

    @pytest.mark.asyncio
    async def test_create(self, router, store):
        result = await self.create(router)

        assert result.outcome == RouteOutcome.APPLIED
        assert store.rows("SELECT * FROM docusign_envelope") == [(ENVELOPE_ID, "tmpl-1", 42, 0)]

    @pytest.mark.asyncio
    async def test_duplicate_create_fails(self, router, store, reports):
        await self.create(router)

        result = await self.create(router)

        assert result.outcome == RouteOutcome.FAILED
        assert store.count("docusign_envelope") == 1
        assert reports()[0]["payload"]["subject"] == "Docusign Envelope error subject"

    @pytest.mark.asyncio
    async def test_update_with_other_status_is_a_no_op(self, router, store, reports):
        await self.create(router)

        result = await send(
            router, TOPICS.envelope_updated, {"id": ENVELOPE_ID, "envelope": {"status": "Sent"}}
        )

        assert result.outcome == RouteOutcome.APPLIED
        assert self.completed(store) == [(0,)]
        assert reports() == []

    @pytest.mark.asyncio
    async def test_update_completed_marks_envelope(self, router, store):
        await self.create(router)

        result = await send(
            router,
            TOPICS.envelope_updated,
            {"id": ENVELOPE_ID, "envelope": {"status": "Completed"}},
        )

        assert result.outcome == RouteOutcome.APPLIED
        assert self.completed(store) == [(1,)]

    @pytest.mark.asyncio
    async def test_update_unknown_envelope_fails(self, router, reports):
        result = await send(
            router,
            TOPICS.envelope_updated,
            {"id": ENVELOPE_ID, "envelope": {"status": "Completed"}},
        )

        assert result.outcome == RouteOutcome.FAILED
        assert len(reports()) == 1

    @pytest.mark.asyncio
    async def test_non_guid_envelope_id_is_applied(self, router, store):
        payload = {"id": "env-7731", "docusignTemplateId": "tmpl-1", "userId": 42, "isCompleted": 1}

        result = await send(router, TOPICS.envelope_created, payload)

        assert result.outcome == RouteOutcome.APPLIED
        assert store.rows("SELECT * FROM docusign_envelope") == [("env-7731", "tmpl-1", 42, 1)]
