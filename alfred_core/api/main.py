import logging

from fastapi import FastAPI

from alfred_core.api.routes.admin import router as admin_router
from alfred_core.api.routes.cron import router as cron_router
from alfred_core.api.routes.proxy import router as proxy_router
from alfred_core.api.routes.vm import router as vm_router

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

app = FastAPI(title="Alfred Core API")

@app.get("/health")
def health():
    return {"status": "ok"}

app.include_router(vm_router)
app.include_router(proxy_router)
app.include_router(cron_router)
app.include_router(admin_router)
