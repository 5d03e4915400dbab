# main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Importamos los routers de la capa de infraestructura
from app.infrastructure.api.routers import operator_router

app = FastAPI(
    title="API de Emisión de Comprobantes Electrónicos",
    description="Pipeline asíncrono de envío de facturas, notas y guías de remisión a NubeFact/SUNAT.",
    version="1.0.0"
)

# Configuración de CORS
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173"
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(operator_router.router)


@app.get("/", tags=["Health Check"])
def read_root():
    return {"status": "ok", "message": "Pipeline de comprobantes electrónicos activo"}
