import asyncio
import asyncpg
import os
import sys
from dotenv import load_dotenv

from waitlist.database.schema import create_schema as create_tables

load_dotenv('.env')

async def create_schema():
    db_url = os.getenv('DATABASE_URL')
    if not db_url:
        print("DATABASE_URL is not set")
        return False

    conn = await asyncpg.connect(db_url)
    try:
        await create_tables(conn)
        print("Created all database tables")
    finally:
        await conn.close()
    return True

if __name__ == "__main__":
    success = asyncio.run(create_schema())
    print("✅ Schema creation completed!" if success else "❌ Schema creation failed!")
    sys.exit(0 if success else 1)
