#!/usr/bin/env python3
"""
PiShield v1 - Sample Alert Sender
Logs in and posts fake alerts, e.g. to exercise the live dashboard.
"""

import argparse
import random
import time
from datetime import datetime, timezone
import requests


SAMPLE_ALERTS = [
    ("SQL Injection Attempt", 443, "UNION SELECT in query string"),
    ("Port Scan", 22, "SYN sweep across 1000 ports"),
    ("Brute Force Attack", 22, "15 failed SSH logins in 60s"),
    ("Cross-Site Scripting (XSS)", 80, "<script> tag in form field"),
    ("DDoS Attempt", 80, "UDP flood from single source"),
    ("Directory Traversal", 8080, "../../etc/passwd in request path"),
]


def login(url: str, email: str, password: str) -> str:
    """Exchange credentials for a bearer token."""
    resp = requests.post(
        f"{url}/api/auth/login",
        json={"email": email, "password": password},
        timeout=10
    )
    resp.raise_for_status()
    return resp.json()["token"]


def send_alert(url: str, token: str, severity: str):
    """Send one sample alert."""
    alert_type, dest_port, details = random.choice(SAMPLE_ALERTS)
    payload = {
        "severity": severity,
        "type": alert_type,
        "sourceIp": f"203.0.113.{random.randint(1, 254)}",
        "destPort": dest_port,
        "details": details,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }

    resp = requests.post(
        f"{url}/api/alerts",
        headers={"Authorization": f"Bearer {token}"},
        json=payload,
        timeout=10
    )
    return resp.status_code, resp.text


def main():
    parser = argparse.ArgumentParser(description="Send sample alerts to PiShield")
    parser.add_argument("--url", default="http://localhost:3001", help="Backend URL")
    parser.add_argument("--email", required=True, help="Dashboard user email")
    parser.add_argument("--password", required=True, help="Dashboard user password")
    parser.add_argument("--count", type=int, default=10, help="Number of alerts to send")
    parser.add_argument("--interval", type=float, default=0.5, help="Interval between alerts (seconds)")
    parser.add_argument(
        "--severity",
        choices=["critical", "high", "medium", "low", "random"],
        default="random",
        help="Alert severity",
    )
    args = parser.parse_args()

    try:
        token = login(args.url, args.email, args.password)
    except requests.exceptions.RequestException as e:
        print(f"Login failed: {e}")
        return

    print(f"Sending {args.count} alerts to {args.url}")
    print("-" * 50)

    for i in range(args.count):
        severity = args.severity
        if severity == "random":
            severity = random.choice(["critical", "high", "medium", "low"])
        try:
            status, resp = send_alert(args.url, token, severity)
            print(f"[{i+1}/{args.count}] {severity.upper():8} Status={status}")
        except requests.exceptions.RequestException as e:
            print(f"[{i+1}/{args.count}] ERROR: {e}")

        if args.interval > 0 and i < args.count - 1:
            time.sleep(args.interval)

    print("-" * 50)
    print("Done!")


if __name__ == "__main__":
    main()
