import asyncio
import logging

from config import AppConfig
from db import Database, ExerciseRepository, MuscleGroupRepository, SettingsRepository

logger = logging.getLogger(__name__)

MUSCLE_GROUPS = [
    # identifier, name, color, icon
    ("Chest", "Chest", "red", "shield"),
    ("Back", "Back", "blue", "castle"),
    ("Legs", "Legs", "green", "boot"),
    ("Shoulders", "Shoulders", "purple", "crown"),
    ("Arms", "Arms", "pink", "sword"),
]

EXERCISES = [
    ("Cable Chest Fly", "Chest", ["Chest Cable Fly", "Cable Flyes", "Cable Flies"]),
    ("Incline Dumbbell Hex Press", "Chest", ["Incline Hex Press", "Incline DB Hex Press"]),
    ("Dips", "Chest", ["Chest Dips", "Parallel Bar Dips"]),
    ("Cable Triceps Pushdown (Bar)", "Chest", ["Tricep Pushdowns", "Straight-Bar Pushdown", "Cable Pushdown (Bar)"]),
    ("Cable Overhead Triceps Extension (Rope)", "Chest", ["Overhead Rope Extension", "Cable Overhead Extension"]),
    ("Back Squat", "Legs", ["Barbell Back Squat", "Squat"]),
    ("Leg Curl", "Legs", ["Hamstring Curl", "Seated Leg Curl", "Lying Leg Curl"]),
    ("Weighted Lunge", "Legs", ["Dumbbell Lunge", "Walking Lunge"]),
    ("Barbell Glute Bridge", "Legs", ["Weighted Glute Bridge", "Glute Bridge (Weighted)"]),
    ("Leg Extension", "Legs", ["Quad Extension", "Knee Extension"]),
    ("Leg Press", "Legs", ["45° Leg Press", "Machine Leg Press"]),
    ("Calf Raise (Leg Press Machine)", "Legs", ["Leg Press Calf Raise", "Calf Raises on Leg Press"]),
    ("Standing Calf Raise", "Legs", ["Standing Weighted Calf Raise", "Smith Machine Calf Raise"]),
    ("Overhead Press", "Shoulders", ["Military Press", "OHP"]),
    ("Dumbbell Shoulder Press", "Shoulders", ["DB Shoulder Press", "Seated Dumbbell Press"]),
    ("Dumbbell Upright Row", "Shoulders", ["Upright DB Row", "Upright Row (DB)"]),
    ("Dumbbell Front Raise", "Shoulders", ["Standing DB Front Raise", "Front Raise (DB)"]),
    ("Face Pull", "Shoulders", ["Cable Face Pull", "Rope Face Pull"]),
    ("Rear Delt Swing", "Shoulders", ["Rear Delt Dumbbell Swing", "Rear Delt Raise (Swing)"]),
    ("Wide-Grip Barbell Shrug", "Shoulders", ["Barbell Shrug (Wide Grip)", "BB Shrugs Wide"]),
    ("Dumbbell Lateral Raise", "Shoulders", ["Side Lateral Raise", "DB Lateral Raise"]),
    ("Deadlift", "Back", ["Conventional Deadlift", "Barbell Deadlift"]),
    ("Bent-Over Barbell Row", "Back", ["Barbell Row", "BOBB Row"]),
    ("Wide-Grip Lat Pulldown", "Back", ["Wide-Grip Pulldown", "Lat Pulldown (Wide)"]),
    ("Bent-Over Dumbbell Row", "Back", ["DB Row", "Single-Arm Dumbbell Row"]),
    ("Single-Arm Seated Cable Row", "Back", ["One-Arm Seated Row", "Single-Arm Cable Row"]),
    ("Alternating Dumbbell Curl", "Arms", ["Alt DB Curl", "Alternating Biceps Curl"]),
    ("Rope Hammer Curl", "Arms", ["Cable Hammer Curl (Rope)", "Hammer Curl (Cable Rope)"]),
    ("Cable Curl (Bar)", "Arms", ["Straight-Bar Cable Curl", "Cable Bar Curl"]),
    ("Reverse Curl", "Arms", ["Pronated Curl", "EZ-Bar Reverse Curl"]),
]


async def seed_defaults(db: Database) -> dict:
    """Seed muscle groups, starter exercises and settings into empty collections."""
    counts = {"muscle_groups": 0, "exercises": 0, "settings": 0}
    groups = MuscleGroupRepository(db)
    if await groups.count() == 0:
        for order, (identifier, name, color, icon) in enumerate(MUSCLE_GROUPS):
            await groups.create(identifier, name, color, icon, True, order)
        counts["muscle_groups"] = len(MUSCLE_GROUPS)
    exercises = ExerciseRepository(db)
    if await exercises.count() == 0:
        for name, group, aliases in EXERCISES:
            await exercises.create(name, group, aliases, "lbs")
        counts["exercises"] = len(EXERCISES)
    settings = SettingsRepository(db)
    if await settings.count() == 0:
        await settings.get()
        counts["settings"] = 1
    logger.info("seeded defaults: %s", counts)
    return counts


async def _seed(db_path: str) -> dict:
    async with Database(db_path) as db:
        return await seed_defaults(db)


def seed() -> None:
    counts = asyncio.run(_seed(AppConfig.load().db_path))
    if not any(counts.values()):
        print("Database already contains data")
        return
    print("Seed data inserted")


if __name__ == "__main__":
    seed()
