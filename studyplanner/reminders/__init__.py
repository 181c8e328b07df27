"""Study reminder service (API, Celery worker, scanner, dispatcher).

Runs as its own container next to the main application. The HTTP API serves
the dispatch trigger, the complete/snooze action links and reminder
management; Celery beat drives the periodic scan and RabbitMQ carries
dispatch tasks to the workers.
"""
