from .quiz_attempt import router as quiz_attempt_router

routes = [
    quiz_attempt_router,
]
