from fastapi import FastAPI
from tooltrack.routers import webhook
from tooltrack.utils.logging import setup_logging

logger = setup_logging()

app = FastAPI(title="Tool Tracking SMS Bot")

app.include_router(webhook.router)

@app.get("/")
async def root():
    return {"message": "Tool tracking bot API is running"}
