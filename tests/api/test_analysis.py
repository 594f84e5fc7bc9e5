"""
API tests for pattern analysis.
"""

from datetime import date, timedelta


def days_ago(n: int) -> str:
    return (date.today() - timedelta(days=n)).isoformat()


class TestPatterns:

    def test_not_enough_dives(self, client, headers, create_log):
        create_log(date=days_ago(1))

        response = client.post("/api/v1/analysis/patterns", headers=headers, json={})

        assert response.status_code == 400
        assert response.json()["detail"].startswith("Need at least 3 dives")

    def test_plateau_report(self, client, headers, create_log):
        create_log(date=days_ago(8), target_depth=40, reached_depth=40)
        create_log(date=days_ago(6), target_depth=55, reached_depth=52,
                   issue_depth=56, issue_comment="EQ failed at 56")
        create_log(date=days_ago(4), target_depth=55, reached_depth=54,
                   issue_depth=57, issue_comment="could not equalize")
        create_log(date=days_ago(2), target_depth=50, reached_depth=50)

        response = client.post("/api/v1/analysis/patterns", headers=headers, json={})

        assert response.status_code == 200
        body = response.json()
        assert body["total_dives"] == 4
        assert body["plateau_buckets"] == [50]
        fifties = next(b for b in body["depth_buckets"] if b["bucket_m"] == 50)
        assert fifties["label"] == "50-59m"
        assert fifties["issue_rate"] == 0.67
        assert fifties["dominant_category"] == "E"
        assert body["overall_trend"] == "improving"
        assert body["consistency"] == 0.5
        assert body["risk_level"] == "low"
        assert body["training_plan"]["phase"] == "technique"
        assert body["training_plan"]["focus_areas"] == ["Equalization at 50-59m"]

    def test_timeframe_excludes_old_dives(self, client, headers, create_log):
        for n in (40, 41, 42):
            create_log(date=days_ago(n))

        response = client.post(
            "/api/v1/analysis/patterns", headers=headers, json={"timeframe_days": 30},
        )
        assert response.status_code == 400

        response = client.post(
            "/api/v1/analysis/patterns", headers=headers, json={"timeframe_days": 60},
        )
        assert response.status_code == 200
        assert response.json()["training_plan"]["phase"] == "progression"

    def test_lung_squeeze_means_recovery(self, client, headers, create_log):
        create_log(date=days_ago(3), lung_squeeze=True)
        create_log(date=days_ago(2))
        create_log(date=days_ago(1))

        body = client.post("/api/v1/analysis/patterns", headers=headers, json={}).json()

        assert body["risk_level"] == "high"
        assert body["safety_incidents"][0]["reasons"] == ["squeeze"]
        assert body["training_plan"] == {
            "phase": "recovery",
            "duration_weeks": 2,
            "focus_areas": [
                "Conservative depths well inside comfort zone",
                "Longer surface intervals and rest days",
                "Medical check if symptoms persist",
            ],
        }

    def test_long_timeframe_reads_every_dive(self, client, headers, create_log):
        for n in range(1, 206):
            create_log(date=days_ago(n))

        response = client.post(
            "/api/v1/analysis/patterns", headers=headers, json={"timeframe_days": 365},
        )

        assert response.status_code == 200
        assert response.json()["total_dives"] == 205
