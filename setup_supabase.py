# Creates ALL tables on Supabase (catalog, professors, ratings, feedback)
# Run this once to set up the schema. Safe to re-run: create_all()
# only creates tables that don't already exist (won't touch existing data)
import db_connection
# Importing Base also imports all models that inherit from it
from db_setup import Base


def main():
    engine = db_connection.engine
    if engine is None:
        print("DATABASE_URL not set, nothing to do.")
        return

    # create_all() looks at every class that inherits from Base
    # and runs CREATE TABLE for each one (only if it doesn't already exist).
    # The unique constraints on ratings / professor links are created here too.
    Base.metadata.create_all(engine)
    print("Tables created successfully on Supabase!")


if __name__ == "__main__":
    main()
