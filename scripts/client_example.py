#!/usr/bin/env python3
"""Example HTTP client for the replbox server.

Usage:
    python scripts/client_example.py [--url http://localhost:5000]

Requires the server to be running (replbox).
"""

import argparse

import httpx


def main():
    parser = argparse.ArgumentParser(description="replbox client walkthrough")
    parser.add_argument("--url", default="http://localhost:5000")
    args = parser.parse_args()

    client = httpx.Client(base_url=args.url, timeout=120.0)

    print("=== replbox HTTP Client Test ===\n")

    print("Creating python session...")
    response = client.post("/", json={"language": "python"})
    response.raise_for_status()
    container_id = response.json()["containerId"]
    print(f"  Container: {container_id[:12]}")

    try:
        print("\nRunning print(1 + 1)...")
        response = client.post(
            "/",
            json={"containerId": container_id, "language": "python", "code": "print(1 + 1)"},
        )
        result = response.json()
        print(f"  Exit code: {result['exit_code']}")
        print(f"  Output: {result['stdout'].strip()}")

        print("\nRunning into main.py...")
        response = client.post(
            "/",
            json={
                "containerId": container_id,
                "language": "python",
                "code": "file-main.py\nprint('Hello from ' + __file__)",
            },
        )
        print(f"  Output: {response.json()['stdout'].strip()}")

        print("\nRunning code that fails...")
        response = client.post(
            "/",
            json={"containerId": container_id, "language": "python", "code": "1/0"},
        )
        result = response.json()
        print(f"  Exit code: {result['exit_code']}")
        print(f"  Stderr: {result['stderr'].strip().splitlines()[-1]}")

    finally:
        print("\nKilling session...")
        response = client.request("DELETE", "/", json={"containerId": container_id})
        print(f"  Status: {response.status_code}")
        client.close()

    print("\nDone!")


if __name__ == "__main__":
    main()
