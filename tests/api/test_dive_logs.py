"""
API tests for dive log CRUD, audits and per-log diagnosis.
"""

from uuid import uuid4


BASE = "/api/v1/dive-logs"


class TestCreate:

    def test_create(self, create_log):
        log = create_log(issue_comment="EQ tight at 35m")

        assert log["reached_depth"] == 38
        assert log["discipline"] == "CWT"
        assert log["issue_comment"] == "EQ tight at 35m"
        assert log["squeeze"] is False

    def test_written_time_is_parsed(self, create_log):
        log = create_log(total_time_seconds=None, total_time="1:50")
        assert log["total_time_seconds"] == 110

    def test_unrealistic_time_is_rejected(self, client, headers):
        response = client.post(BASE, headers=headers, json={
            "date": "2026-10-01", "reached_depth": 20, "total_time_seconds": 20,
        })

        assert response.status_code == 422
        assert response.json()["detail"]["errors"] == [
            "Total dive time must be between 30 seconds and 15 minutes"
        ]

    def test_overshoot_is_rejected(self, client, headers):
        response = client.post(BASE, headers=headers, json={
            "date": "2026-10-01", "target_depth": 20, "reached_depth": 35,
        })
        assert response.status_code == 422

    def test_schema_errors(self, client, headers):
        response = client.post(BASE, headers=headers, json={
            "date": "2026-10-01", "narcosis_level": 9,
        })
        assert response.status_code == 422


class TestReadUpdateDelete:

    def test_get(self, client, headers, create_log):
        log = create_log()

        response = client.get(f"{BASE}/{log['id']}", headers=headers)
        assert response.status_code == 200
        assert response.json() == log

    def test_other_diver_sees_nothing(self, client, headers, create_log):
        log = create_log()

        other = {**headers, "X-User-Id": "someone-else"}
        assert client.get(f"{BASE}/{log['id']}", headers=other).status_code == 404

    def test_list_newest_first_with_filters(self, client, headers, create_log):
        create_log(date="2026-10-01")
        create_log(date="2026-10-03", discipline="FIM")
        create_log(date="2026-10-02")

        everything = client.get(BASE, headers=headers).json()
        fim = client.get(BASE, headers=headers, params={"discipline": "FIM"}).json()
        page = client.get(BASE, headers=headers, params={"limit": 1, "offset": 1}).json()

        assert [i["date"] for i in everything["items"]] == [
            "2026-10-03", "2026-10-02", "2026-10-01",
        ]
        assert fim["count"] == 1
        assert page["items"][0]["date"] == "2026-10-02"
        assert (page["limit"], page["offset"]) == (1, 1)

    def test_list_limit_is_capped(self, client, headers):
        response = client.get(BASE, headers=headers, params={"limit": 500})
        assert response.status_code == 422

    def test_update_keeps_identity(self, client, headers, create_log):
        log = create_log()

        response = client.put(f"{BASE}/{log['id']}", headers=headers, json={
            "date": "2026-10-01", "discipline": "CWT",
            "target_depth": 42, "reached_depth": 42, "total_time_seconds": 112,
        })

        assert response.status_code == 200
        updated = response.json()
        assert updated["id"] == log["id"]
        assert updated["created_at"] == log["created_at"]
        assert updated["reached_depth"] == 42
        assert updated["location"] is None

    def test_update_missing(self, client, headers):
        response = client.put(f"{BASE}/{uuid4()}", headers=headers, json={"date": "2026-10-01"})
        assert response.status_code == 404

    def test_delete(self, client, headers, create_log):
        log = create_log()

        assert client.delete(f"{BASE}/{log['id']}", headers=headers).status_code == 204
        assert client.get(f"{BASE}/{log['id']}", headers=headers).status_code == 404
        assert client.delete(f"{BASE}/{log['id']}", headers=headers).status_code == 404


class TestAudit:

    def test_audit_is_stored(self, client, headers, create_log):
        log = create_log()

        audited = client.post(f"{BASE}/{log['id']}/audit", headers=headers)
        stored = client.get(f"{BASE}/{log['id']}/audit", headers=headers)

        assert audited.status_code == 200
        assert stored.json() == audited.json()
        body = audited.json()
        assert body["log_id"] == log["id"]
        assert body["is_personal_best"] is True
        assert len(body["evaluations"]) == 7
        assert 0 <= body["scores"]["final"] <= 5

    def test_later_dives_do_not_count_for_personal_best(self, client, headers, create_log):
        log = create_log(date="2026-10-01", reached_depth=38)
        create_log(date="2026-10-05", target_depth=50, reached_depth=50)

        body = client.post(f"{BASE}/{log['id']}/audit", headers=headers).json()
        assert body["is_personal_best"] is True

    def test_earlier_deeper_dive_blocks_personal_best(self, client, headers, create_log):
        create_log(date="2026-09-20", target_depth=50, reached_depth=50)
        log = create_log(date="2026-10-01", reached_depth=38)

        body = client.post(f"{BASE}/{log['id']}/audit", headers=headers).json()

        assert body["is_personal_best"] is False
        assert body["previous_best_depth"] == 50

    def test_later_dive_on_the_same_day_does_not_count(self, client, headers, create_log):
        log = create_log(date="2026-10-01", reached_depth=38)
        create_log(date="2026-10-01", target_depth=45, reached_depth=44)

        body = client.post(f"{BASE}/{log['id']}/audit", headers=headers).json()

        assert body["is_personal_best"] is True
        assert body["previous_best_depth"] == 0

    def test_deeper_dive_beyond_one_page_of_history_counts(self, client, headers, create_log):
        create_log(date="2025-01-10", target_depth=60, reached_depth=60)
        for _ in range(200):
            create_log(date="2025-06-01", target_depth=20, reached_depth=20, total_time_seconds=60)
        log = create_log(date="2026-10-01", target_depth=45, reached_depth=45)

        body = client.post(f"{BASE}/{log['id']}/audit", headers=headers).json()

        assert body["is_personal_best"] is False
        assert body["previous_best_depth"] == 60

    def test_never_audited(self, client, headers, create_log):
        log = create_log()
        assert client.get(f"{BASE}/{log['id']}/audit", headers=headers).status_code == 404


class TestDiagnose:

    def test_clean_log(self, client, headers, create_log):
        log = create_log()

        body = client.post(f"{BASE}/{log['id']}/diagnose", headers=headers).json()

        assert body["assessments"] == []
        assert body["summary"]["safe_to_continue"] is True

    def test_lung_squeeze_log(self, client, headers, create_log):
        log = create_log(lung_squeeze=True, issue_depth=36, issue_comment="EQ failed then chest pain")

        body = client.post(f"{BASE}/{log['id']}/diagnose", headers=headers).json()

        assert [a["category"] for a in body["assessments"]] == ["S", "E"]
        assert body["summary"]["critical_issues"] == 1
        assert body["summary"]["safe_to_continue"] is False
        assert body["coaching_advice"][-1] == (
            "Equalization + squeeze = technique issue. Work with instructor."
        )
