from fastapi import APIRouter, Depends

from app.api.dependencies import get_fraud_ingestor
from app.domain.schemas import FraudEvent
from app.services.fraud_ingestor import FraudAlertIngestor

router = APIRouter(prefix="/v1/fraud-events", tags=["Fraud events"])


@router.post("")
async def receive_fraud_event(
    event:    FraudEvent,
    ingestor: FraudAlertIngestor = Depends(get_fraud_ingestor),
) -> dict:
    """
    Recibe un evento ya verificado por el receptor de webhooks.
    Siempre responde 200 para que el procesador no reintente: los
    fallos internos quedan en el log.
    """
    handled = await ingestor.ingest(event)
    return {"received": True, "handled": handled}
