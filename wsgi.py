from print_scheduler import create_app

app = create_app()

# gunicorn -w 1 wsgi:app
# Keep one worker with IS_SCHEDULER_WORKER set when the nightly reschedule is enabled
