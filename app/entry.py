# SPDX-License-Identifier: MIT
# Copyright (c) 2024 Collegiate Cyber Defense Club
import os
import subprocess
import sys


# Define the default command to run uvicorn with environment variables
def run_uvicorn():
    host = os.getenv("CHECKIN_HOST", "0.0.0.0")
    port = os.getenv("CHECKIN_PORT", "8080")
    forwarded_allow_ips = os.getenv("CHECKIN_FORWARDED_ALLOW_IPS")

    # One worker: the attendance table lock only serializes within a process.
    command = [
        "uvicorn",
        "app.main:app",
        "--host",
        host,
        "--port",
        port,
        "--workers",
        "1",
    ]

    if forwarded_allow_ips is not None:
        command.extend(["--forwarded-allow-ips", forwarded_allow_ips])
        command.append("--proxy-headers")

    subprocess.run(command)


def run_dev():
    host = os.getenv("CHECKIN_HOST", "0.0.0.0")
    port = os.getenv("CHECKIN_PORT", "8080")
    command = ["uvicorn", "app.main:app", "--host", host, "--port", port, "--reload"]
    subprocess.run(command)


# Define the authorize command
def run_authorize():
    from app.util.authentication import get_google_auth
    from app.util.errors import AuthFailure

    auth = get_google_auth()
    try:
        print("Authorize this app by visiting this url:", auth.authorization_url())
        code = input("Enter the code from that page here: ").strip()
        auth.fetch_token(code)
    except AuthFailure as e:
        print(e.msg, file=sys.stderr)
        sys.exit(1)
    print("Token stored to", auth.token_path)


# Entry point
if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "authorize":
        run_authorize()
    elif len(sys.argv) > 1 and sys.argv[1] == "dev":
        run_dev()
    else:
        run_uvicorn()
