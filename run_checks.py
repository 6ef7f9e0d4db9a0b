"""
Smoke check: walks one report through its lifecycle against the in-memory store.

Usage: USE_MOCK_DB=true python run_checks.py
"""

from fastapi.testclient import TestClient
from app.main import app

client = TestClient(app)

REPORTER = {"X-Actor-Id": "citizen-1", "X-Actor-Role": "reporter"}
ADMIN = {"X-Actor-Id": "admin-1", "X-Actor-Role": "admin", "X-Actor-Name": "Asha"}
OFFICER = {"X-Actor-Id": "officer-1", "X-Actor-Role": "officer"}

print('ROOT:')
print(client.get('/').json())

print('\nHEALTH:')
print(client.get('/health').json())

print('\nSTORE HEALTH:')
resp = client.get('/health/db')
print(resp.status_code, resp.json())

print('\nCREATE:')
resp = client.post('/reports', json={"title": "Pothole", "description": "Large pothole on the main road"}, headers=REPORTER)
print(resp.status_code)
report_id = resp.json()["report"]["id"]
print(report_id)

steps = [
    (ADMIN, {"status": "assigned", "extra": {"assigned_officer_ids": ["officer-1"]}}),
    (OFFICER, {"status": "in_progress"}),
    (OFFICER, {"status": "awaiting_verification", "extra": {"photos_after": ["https://cdn.example/after.jpg"]}}),
    (ADMIN, {"status": "verified"}),
    (ADMIN, {"status": "closed"}),
]
for headers, body in steps:
    resp = client.post(f'/reports/{report_id}/transitions', json=body, headers=headers)
    print(f'\nTRANSITION → {body["status"]}:', resp.status_code)
    if resp.status_code != 200:
        print(resp.json())

print('\nAUDIT:')
resp = client.get('/audit-logs', params={"report_id": report_id}, headers=ADMIN)
for entry in resp.json()["items"]:
    print(entry["sequence"], entry["action"], entry["diff"].get("status"))

print('\nNOTIFICATIONS:')
for item in client.get('/notifications', headers=REPORTER).json()["items"]:
    print(item["type"], '-', item["message"])
