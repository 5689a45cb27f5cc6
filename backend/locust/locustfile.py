"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags admission   # Race for the last seats
  locust -f locustfile.py --tags waitlist    # Concurrent joins / leaves
  locust -f locustfile.py --tags throughput  # Cached capacity reads
  locust -f locustfile.py --tags edge        # Bad input
  locust -f locustfile.py                    # All tests

After an admission or waitlist run, verify the invariants:
  SELECT COUNT(*) FROM attendees
   WHERE event_id = 'load-admission' AND attendee_type = 'primary' AND rsvp_status = 'going';
  -- should be <= 10

  SELECT waitlist_position, COUNT(*) FROM attendees
   WHERE event_id = 'load-admission' AND rsvp_status = 'waitlisted'
   GROUP BY 1 ORDER BY 1;
  -- should be exactly 1..M, each once
"""

import uuid
from locust import HttpUser, task, between, tag, events

ADMISSION_EVENT_ID = "load-admission"
THROUGHPUT_EVENT_ID = "load-throughput"


def new_user_headers():
    return {"X-User-ID": f"load-{uuid.uuid4().hex[:12]}"}


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: sync the capacity config of the load-test events."""
    print("\n" + "=" * 60)
    print("SETUP: Registering load-test events...")
    print("=" * 60)


class AdmissionUser(HttpUser):
    """
    TEST 1: Admission - 100 users -> 10 seats, waitlist capped at 50

    Run: locust -f locustfile.py --tags admission -u 100 -r 50 --run-time 30s

    Expected responses:
      200 going / waitlisted
      409 capacity_exceeded (waitlist full) or transaction_conflict (retryable)
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.headers = new_user_headers()
        self.client.put(
            f"/api/v1/admin/events/{ADMISSION_EVENT_ID}",
            json={"capacity": 10, "waitlist_enabled": True, "waitlist_limit": 50},
            name="/api/v1/admin/events/{id}",
        )

    @tag("admission")
    @task(5)
    def request_going(self):
        """Everyone fights for the same 10 seats."""
        with self.client.post(
            f"/api/v1/events/{ADMISSION_EVENT_ID}/rsvp",
            json={"status": "going"},
            headers=self.headers,
            name="/api/v1/events/{id}/rsvp [going]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("admission")
    @task(1)
    def cancel(self):
        """Give the seat back, which promotes the head of the waitlist."""
        with self.client.post(
            f"/api/v1/events/{ADMISSION_EVENT_ID}/rsvp",
            json={"status": "not-going"},
            headers=self.headers,
            name="/api/v1/events/{id}/rsvp [not-going]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class WaitlistUser(HttpUser):
    """
    TEST 2: Waitlist churn - concurrent joins and leaves on one queue

    Run: locust -f locustfile.py --tags waitlist -u 50 -r 25 --run-time 30s
    """
    wait_time = between(0, 0.2)

    def on_start(self):
        self.headers = new_user_headers()

    @tag("waitlist")
    @task(3)
    def join(self):
        with self.client.post(
            f"/api/v1/events/{ADMISSION_EVENT_ID}/waitlist",
            headers=self.headers,
            name="/api/v1/events/{id}/waitlist [join]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 409, 422):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("waitlist")
    @task(1)
    def leave(self):
        with self.client.delete(
            f"/api/v1/events/{ADMISSION_EVENT_ID}/waitlist",
            headers=self.headers,
            name="/api/v1/events/{id}/waitlist [leave]",
            catch_response=True,
        ) as resp:
            if resp.status_code in (204, 404, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("waitlist", "read")
    @task(2)
    def position(self):
        self.client.get(
            f"/api/v1/events/{ADMISSION_EVENT_ID}/waitlist/position",
            headers=self.headers,
            name="/api/v1/events/{id}/waitlist/position",
        )


class ThroughputUser(HttpUser):
    """
    TEST 3: Throughput - capacity cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false, run again

    Compare avg response time, requests/sec, P95/P99 latency.
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        self.client.put(
            f"/api/v1/admin/events/{THROUGHPUT_EVENT_ID}",
            json={"capacity": 500, "waitlist_enabled": True},
            name="/api/v1/admin/events/{id}",
        )

    @tag("throughput", "read")
    @task(10)
    def capacity_cached(self):
        """Hammer the cached endpoint."""
        self.client.get(
            f"/api/v1/events/{THROUGHPUT_EVENT_ID}/capacity",
            name="/api/v1/events/{id}/capacity [cached]",
        )

    @tag("throughput", "read")
    @task(3)
    def counts(self):
        self.client.get(
            f"/api/v1/events/{THROUGHPUT_EVENT_ID}/counts",
            name="/api/v1/events/{id}/counts",
        )

    @tag("throughput")
    @task(1)
    def health_check(self):
        """Monitor system health."""
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 4: Edge cases - bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = new_user_headers()

    def _expect(self, resp, codes):
        if resp.status_code in codes:
            resp.success()
        else:
            resp.failure(f"Expected {codes}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_event(self):
        with self.client.post(
            "/api/v1/events/does-not-exist/rsvp",
            json={"status": "going"},
            headers=self.headers,
            name="/api/v1/events/{id}/rsvp [unknown]",
            catch_response=True,
        ) as resp:
            self._expect(resp, (404,))

    @tag("edge")
    @task
    def request_waitlisted_directly(self):
        with self.client.post(
            f"/api/v1/events/{ADMISSION_EVENT_ID}/rsvp",
            json={"status": "waitlisted"},
            headers=self.headers,
            name="/api/v1/events/{id}/rsvp [waitlisted]",
            catch_response=True,
        ) as resp:
            self._expect(resp, (422,))

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            f"/api/v1/events/{ADMISSION_EVENT_ID}/rsvp",
            data="not json at all",
            headers=self.headers,
            name="/api/v1/events/{id}/rsvp [malformed]",
            catch_response=True,
        ) as resp:
            self._expect(resp, (400, 422))

    @tag("edge")
    @task
    def missing_user(self):
        with self.client.post(
            f"/api/v1/events/{ADMISSION_EVENT_ID}/rsvp",
            json={"status": "going"},
            name="/api/v1/events/{id}/rsvp [no user]",
            catch_response=True,
        ) as resp:
            self._expect(resp, (401,))
