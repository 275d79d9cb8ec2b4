"""
Knowledge Controllers (API Routes)
==================================

FastAPI routes for question answering and document upload.

Controllers delegate to application services.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database import get_session
from src.knowledge.application import (
    AskRequest, AskResponse, QAHistoryInfo, FAQInfo, FAQResponse,
    UploadResponse, DocumentInfo,
    QAService, DocumentIngestionService, EmbeddingService, AnswerComposer,
    ILexiconProvider, StaticLexiconProvider,
)
from src.knowledge.infrastructure import (
    SQLAlchemyKnowledgeRepository,
    SQLAlchemyQAHistoryRepository,
    extract_text,
)
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["Knowledge"])


# ========== Example payloads for Swagger ==========

ASK_RESPONSE_EXAMPLE = {
    "answer": "Based on our IT policies: New hardware requests (monitor, keyboard, mouse) must be approved by the direct manager.",
    "confidence": 82,
    "sources": [
        {
            "documentId": "3f1c2a7e-5d0b-4c39-9a51-0c7e6f1d2b44",
            "documentTitle": "IT Policies",
            "chunk": "Hardware Requests: New hardware requests (monitor, keyboard, mouse) must be approved...",
            "similarity": 0.82,
            "matchType": "semantic"
        }
    ],
    "responseTime": 840
}


# ========== Dependencies ==========

def get_lexicon(request: Request) -> ILexiconProvider:
    """Hot-reloaded lexicon from app state, built-in lexicon otherwise."""
    return getattr(request.app.state, "lexicon_manager", None) or StaticLexiconProvider()


def get_llm_client(request: Request):
    """Configured provider client, or None when running without one."""
    return getattr(request.app.state, "llm_client", None)


async def get_qa_service(
    request: Request,
    db: AsyncSession = Depends(get_session)
) -> QAService:
    llm_client = get_llm_client(request)
    lexicon = get_lexicon(request)
    return QAService(
        knowledge_repository=SQLAlchemyKnowledgeRepository(db),
        history_repository=SQLAlchemyQAHistoryRepository(db),
        embedding_service=EmbeddingService(llm_client),
        composer=AnswerComposer(llm_client, lexicon),
        lexicon=lexicon,
        chat=llm_client
    )


async def get_ingestion_service(
    request: Request,
    db: AsyncSession = Depends(get_session)
) -> DocumentIngestionService:
    return DocumentIngestionService(
        knowledge_repository=SQLAlchemyKnowledgeRepository(db),
        embedding_service=EmbeddingService(get_llm_client(request))
    )


# ========== Route Handlers ==========

@router.post(
    "/qa/ask",
    response_model=AskResponse,
    summary="Ask a question about company documents",
    description="""
    Answers a question from uploaded company documents.

    Retrieval falls back from semantic search to multilingual keyword search
    (English and Azerbaijani) to canned topic answers, so every question gets
    an answer. `confidence` below 50 means low confidence.
    """,
    responses={
        200: {"content": {"application/json": {"example": ASK_RESPONSE_EXAMPLE}}},
        400: {"description": "Question missing or blank"}
    }
)
async def ask_question(
    payload: AskRequest,
    service: QAService = Depends(get_qa_service)
) -> AskResponse:
    result = await service.answer_question(
        payload.question,
        user_id=payload.user_id,
        department=payload.department
    )
    return AskResponse.from_result(result)


@router.get(
    "/qa/recent",
    response_model=List[QAHistoryInfo],
    summary="Recently answered questions"
)
async def recent_questions(
    limit: int = Query(default=20, ge=1, le=100),
    service: QAService = Depends(get_qa_service)
) -> List[QAHistoryInfo]:
    records = await service.get_recent_history(limit)
    return [QAHistoryInfo.from_record(record) for record in records]


@router.get(
    "/qa/faqs",
    response_model=FAQResponse,
    summary="FAQ items generated from recent questions"
)
async def frequently_asked(
    department: Optional[str] = Query(default=None),
    service: QAService = Depends(get_qa_service)
) -> FAQResponse:
    items = await service.generate_faqs(department)
    return FAQResponse(faqs=[FAQInfo(question=item.question, answer=item.answer) for item in items])


@router.post(
    "/documents/upload",
    response_model=UploadResponse,
    summary="Upload a document",
    description="""
    Accepts PDF, plain text or markdown. The text is split into overlapping
    chunks and embedded; if the embedding provider is unreachable the chunks
    are stored with placeholder vectors and re-embedded later.
    """,
    responses={400: {"description": "Unsupported or empty file"}}
)
async def upload_document(
    file: UploadFile = File(...),
    title: Optional[str] = Form(default=None),
    department_id: Optional[str] = Form(default=None, alias="departmentId"),
    access_role: Optional[str] = Form(default=None, alias="accessRole"),
    service: DocumentIngestionService = Depends(get_ingestion_service)
) -> UploadResponse:
    content = await file.read()
    text = extract_text(file.filename or "", file.content_type, content)

    result = await service.ingest(
        title=title or file.filename or "Untitled document",
        text=text,
        department_id=department_id,
        access_role=access_role
    )
    return UploadResponse(
        success=True,
        document_id=result.document.id,
        chunks_created=result.chunks_created,
        total_tokens=result.total_tokens,
        degraded_embeddings=result.degraded
    )


@router.get(
    "/documents",
    response_model=List[DocumentInfo],
    summary="List documents"
)
async def list_documents(
    department_id: Optional[str] = Query(default=None, alias="departmentId"),
    service: DocumentIngestionService = Depends(get_ingestion_service)
) -> List[DocumentInfo]:
    documents = await service.list_documents(department_id)
    return [DocumentInfo.from_domain(document) for document in documents]
