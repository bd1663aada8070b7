# One-off fix: flag the shared engineering disciplines as tipo='básica'
# so they show up in every course's basic list.
from database import BASIC_DISCIPLINE_CODES, mark_basic_disciplines


def main():
    print(f"Marking {len(BASIC_DISCIPLINE_CODES)} discipline codes as 'básica'...")
    updated = mark_basic_disciplines()
    print(f"Done, {updated} discipline(s) updated.")


if __name__ == "__main__":
    main()
