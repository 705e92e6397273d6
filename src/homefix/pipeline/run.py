import asyncio
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from ..config import Settings
from ..imaging import cleanup_processed_image, process_image_for_vision
from ..llm.analyze import RepairAnalyzer
from ..mlops.tracing import tracer
from ..retrieval.products import add_product_images
from ..retrieval.youtube import fallback_video_url, find_tutorial_videos, normalize_youtube_url
from ..schemas.analysis import RepairAnalysis, VideoResult
from ..store.repo import Repo

logger = logging.getLogger("pipeline")

DEFAULT_DESCRIPTION = "User uploaded an image for analysis"


class StoredUpload(BaseModel):
    """A photo already written to the upload directory."""
    path: str
    original_name: str
    mime: str
    size_bytes: int


class AnalysisOutcome(BaseModel):
    """What the request returns plus what still has to be persisted afterwards."""
    ticket_id: int
    analysis: RepairAnalysis
    youtube_url: Optional[str] = None
    youtube_videos: List[VideoResult] = []
    image_path: Optional[str] = None
    processed_image_path: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        data = self.analysis.to_dict()
        response: Dict[str, Any] = {
            "ticketId": self.ticket_id,
            "materials": data.get("materials", []),
            "tools": data.get("tools", []),
            "steps": data.get("steps", []),
        }
        if self.analysis.likelihood is not None:
            response["likelihood"] = data["likelihood"]
        if self.analysis.safety is not None:
            response["safety"] = data["safety"]
        if self.youtube_url:
            response["youtube_url"] = self.youtube_url
        if self.youtube_videos:
            response["youtube_videos"] = [v.model_dump(exclude_none=True) for v in self.youtube_videos]
        return response


def resolve_youtube(analysis: RepairAnalysis, searched: Optional[List[VideoResult]], description: str) -> Optional[str]:
    """Searched videos win, then the model's own link if it is a real video, then the fallback."""
    if searched:
        return searched[0].url
    if analysis.youtube_url:
        normalized = normalize_youtube_url(analysis.youtube_url)
        if normalized:
            return normalized
        logger.info(f"Model YouTube URL rejected: {analysis.youtube_url}")
    return fallback_video_url(description)


class AnalysisPipeline:
    def __init__(self, settings: Settings, analyzer: Optional[RepairAnalyzer] = None):
        self.settings = settings
        self.analyzer = analyzer or RepairAnalyzer(settings)

    @staticmethod
    def _prepare_image(upload: Optional[StoredUpload]) -> Optional[str]:
        if upload is None:
            return None
        try:
            return process_image_for_vision(upload.path).processed_path
        except Exception as e:
            logger.warning(f"Failed to process image, using original: {e}")
            return upload.path

    async def run(
        self,
        description: Optional[str],
        email: Optional[str] = None,
        upload: Optional[StoredUpload] = None,
    ) -> AnalysisOutcome:
        """
        Analyze one repair request end to end, short of persistence.

        Ticket creation and image processing run concurrently, then the model
        call, then product lookup and video search concurrently.
        """
        description = description or DEFAULT_DESCRIPTION
        processed_path: Optional[str] = None

        try:
            with tracer.span("pipeline.analyze", span_type="CHAIN", inputs={"description": description}):
                ticket_result, prepared = await asyncio.gather(
                    asyncio.to_thread(Repo.create_ticket, description, email),
                    asyncio.to_thread(self._prepare_image, upload),
                    return_exceptions=True,
                )
                # Keep the processed path before re-raising so it gets cleaned up
                if not isinstance(prepared, BaseException):
                    processed_path = prepared
                for result in (ticket_result, prepared):
                    if isinstance(result, BaseException):
                        raise result
                ticket_id = ticket_result

                if upload is not None:
                    await asyncio.to_thread(
                        Repo.create_asset, ticket_id, upload.path, upload.original_name, upload.mime, upload.size_bytes
                    )

                analysis = await asyncio.to_thread(self.analyzer.analyze, description, processed_path)

                analysis, searched = await asyncio.gather(
                    add_product_images(analysis),
                    find_tutorial_videos(description, analysis),
                )
        except Exception:
            if processed_path and upload is not None and processed_path != upload.path:
                cleanup_processed_image(processed_path)
            raise

        return AnalysisOutcome(
            ticket_id=ticket_id,
            analysis=analysis,
            youtube_url=resolve_youtube(analysis, searched, description),
            youtube_videos=searched or [],
            image_path=upload.path if upload else None,
            processed_image_path=processed_path,
        )

    @staticmethod
    def persist(outcome: AnalysisOutcome):
        """Store the analysis and close out the ticket. Runs after the response; failures are only logged."""
        data = outcome.analysis.to_dict()
        try:
            Repo.create_analysis(
                outcome.ticket_id,
                data.get("materials", []),
                data.get("tools", []),
                data.get("steps", []),
                likelihood=data.get("likelihood"),
                safety=data.get("safety"),
                youtube_url=outcome.youtube_url,
            )
            Repo.update_ticket_status(outcome.ticket_id, "analyzed")
        except Exception as e:
            logger.warning(f"Background persistence failed for ticket {outcome.ticket_id}: {e}")

        if outcome.processed_image_path and outcome.processed_image_path != outcome.image_path:
            cleanup_processed_image(outcome.processed_image_path)
