from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .routers import documents, signers, fields, signing
from .db import init_db

app = FastAPI(title="EasySign API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # malformed or incomplete bodies are plain 400s for the editor clients
    return JSONResponse(
        status_code=400,
        content={"detail": "Missing or invalid fields", "errors": jsonable_encoder(exc.errors())},
    )

@app.on_event("startup")
def on_startup():
    init_db()

app.include_router(documents.router, prefix="/api/documents", tags=["documents"])
app.include_router(signers.router, prefix="/api/documents", tags=["signers"])  # nested
app.include_router(fields.router, prefix="/api/documents", tags=["fields"])  # nested
app.include_router(signing.router, prefix="/api/sign", tags=["signing"])

@app.get("/")
def root():
    return {"ok": True, "service": "easysign-api"}
