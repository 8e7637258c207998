"""Print a bcrypt hash to put in ADMIN_PASSWORD_HASH.

    python -m voteledger.hash_admin_password
"""
import getpass

from .security import hash_password


def main():
    password = getpass.getpass("Admin password: ")
    if password != getpass.getpass("Repeat password: "):
        raise SystemExit("Passwords do not match.")
    if len(password) < 8:
        raise SystemExit("Use at least 8 characters.")
    print(hash_password(password))


if __name__ == "__main__":
    main()
