"""
Database initialization script for deployment
Run with: python init_db.py [--backfill] [--recalculate]
"""

import sys

from app import create_app
from models import db, init_default_data
import services


def initialize_database():
    """Initialize database tables and default data"""
    app = create_app({'SEED_DEFAULT_DATA': False})
    with app.app_context():
        print("Creating database tables...")
        db.create_all()

        print("Initializing default data...")
        init_default_data()

        if '--backfill' in sys.argv:
            result = services.backfill_predicted_team_names()
            print(f"Backfilled {result.updated} predicted team names ({len(result.skipped)} skipped)")

        if '--recalculate' in sys.argv:
            summaries = services.recalculate_all()
            changed = sum(summary.points_changed for summary in summaries)
            print(f"Recalculated {len(summaries)} completed matches ({changed} predictions changed)")

        print("✅ Database initialized successfully!")
        print("Default admin credentials:")
        print("  Username: admin")
        print("  Password: admin12345")


if __name__ == "__main__":
    initialize_database()
