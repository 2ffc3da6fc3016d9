from fastapi import FastAPI
from .api.generate import router as generate_router

app = FastAPI(title="Static Site Generation Backend")
app.include_router(generate_router, prefix="/generate")
