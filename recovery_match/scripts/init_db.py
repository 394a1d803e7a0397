from sqlalchemy import text
from recovery_match.db import engine
from recovery_match.models import Base

def main():
    Base.metadata.create_all(bind=engine)
    with engine.begin() as con:
        con.execute(text("CREATE INDEX IF NOT EXISTS idx_opportunity_status ON funding_opportunities (status)"))
        con.execute(text("CREATE INDEX IF NOT EXISTS idx_user_type ON users (user_type)"))
        con.execute(text("CREATE INDEX IF NOT EXISTS idx_match_survivor ON opportunity_matches (survivor_id)"))
    print("DB initialized.")

if __name__ == "__main__":
    main()
