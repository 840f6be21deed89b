# ScoreCastX Gunicorn Configuration
#
# IMPORTANT: live SSE subscriptions and per-match scoring locks live in process
# memory (BroadcastHub, MatchLockRegistry). Multiple workers would each get
# their own registry and spectators on one worker would miss events scored on
# another. Must use exactly 1 worker; scale with threads.
#
# Every open SSE stream occupies one worker thread for as long as it stays
# connected. With N threads, N open streams leave nothing for the scoring
# endpoints, so size SCORECASTX_THREADS above the expected number of
# spectators.
import os

bind = os.getenv("SCORECASTX_BIND", "127.0.0.1:5000")
workers = 1
worker_class = "gthread"
threads = int(os.getenv("SCORECASTX_THREADS", "64"))
# SSE connections stay open; heartbeats keep them well inside this window
timeout = 120
wsgi_app = "app:create_app()"
