import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///' + os.path.join(BASE_DIR, 'carguessr.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Listing cache files (easy = dealership stock, hard = auction results)
    LISTINGS_EASY_PATH = os.environ.get('LISTINGS_EASY_PATH') or os.path.join(BASE_DIR, 'data', 'lookers_cache.json')
    LISTINGS_HARD_PATH = os.environ.get('LISTINGS_HARD_PATH') or os.path.join(BASE_DIR, 'data', 'bonhams_cache.json')
    # Recently-shown window per session
    HISTORY_WINDOW = int(os.environ.get('HISTORY_WINDOW', '10'))
    # Listings per challenge session
    CHALLENGE_LENGTH = int(os.environ.get('CHALLENGE_LENGTH', '10'))
    # Streak: a guess within this percentage of the real price keeps the streak alive
    STREAK_TOLERANCE_PCT = float(os.environ.get('STREAK_TOLERANCE_PCT', '10'))
    # Challenge points: MAX * exp(-pct / DECAY), zero at or beyond ZERO_POINTS
    CHALLENGE_MAX_POINTS = int(os.environ.get('CHALLENGE_MAX_POINTS', '5000'))
    CHALLENGE_DECAY_PCT = float(os.environ.get('CHALLENGE_DECAY_PCT', '20'))
    CHALLENGE_ZERO_POINTS_PCT = float(os.environ.get('CHALLENGE_ZERO_POINTS_PCT', '100'))
    MAX_GUESS_PRICE = int(os.environ.get('MAX_GUESS_PRICE', '10000000'))
    LEADERBOARD_DEFAULT_LIMIT = int(os.environ.get('LEADERBOARD_DEFAULT_LIMIT', '10'))
    LEADERBOARD_MAX_LIMIT = int(os.environ.get('LEADERBOARD_MAX_LIMIT', '100'))
    LEADERBOARD_NAME_MAX = int(os.environ.get('LEADERBOARD_NAME_MAX', '20'))
    # Idle sessions are dropped after this many seconds
    SESSION_TTL_SEC = int(os.environ.get('SESSION_TTL_SEC', '86400'))
    # Friend challenges
    CHALLENGE_TTL_HOURS = int(os.environ.get('CHALLENGE_TTL_HOURS', '48'))
    CHALLENGE_MAX_PARTICIPANTS = int(os.environ.get('CHALLENGE_MAX_PARTICIPANTS', '10'))
