from pathlib import Path
from typing import Callable, Optional

from pagecraft.core.config import GenerationConfig, settings
from pagecraft.core.exceptions import PageCraftError
from pagecraft.core.logging_config import generate_request_id, logger, set_request_id
from pagecraft.modules.generate_document.document import DocumentTree, LxmlDocument
from pagecraft.modules.generate_document.document_operator import DocumentOperator
from pagecraft.modules.generate_document.flow_manager import RequestFlowManager
from pagecraft.modules.generate_document.interfaces import FlowSummary, Fragment
from pagecraft.utils.html_snapshot import save_html_to_file
from pagecraft.utils.performance_tracer import PerformanceTracer


class GenerateDocumentCapability:
    """
    Generate a page into a document tree from a free-text request.

    The document is supplied by the caller and outlives the request; a
    fresh LxmlDocument with the default template is used otherwise.
    """

    def __init__(
        self,
        document: Optional[DocumentTree] = None,
        llm_client=None,
        config: Optional[GenerationConfig] = None,
        flow_manager: Optional[RequestFlowManager] = None,
    ):
        self.config = config or GenerationConfig.from_settings(settings)
        self.document = document or LxmlDocument()
        self.operator = DocumentOperator(self.document)
        self.flow_manager = flow_manager or RequestFlowManager(
            llm_client=llm_client,
            config=self.config,
            tracer=PerformanceTracer(enabled=self.config.trace_performance),
        )
        self.last_summary: Optional[FlowSummary] = None
        self.last_snapshot: Optional[Path] = None

    async def request(self, input_text: str, observer: Optional[Callable[[Fragment, bool], None]] = None) -> None:
        """
        Run the pipeline against self.document.

        observer, when given, sees every fragment right after it was
        applied together with whether it landed.

        Raises:
            PageCraftError: the request was aborted (protocol violation or
                planner failure). Fragments applied before the abort stay
                in the document.
        """
        set_request_id(generate_request_id())
        logger.info(f"[Capability] Generating page for: {input_text[:80]}")

        try:
            self.last_summary = await self.flow_manager.execute_flow(input_text, self._applier(observer))
        except PageCraftError as e:
            logger.error(f"[Capability] Request aborted: {e.code}: {e.message}", extra={"details": e.details})
            raise
        finally:
            self.flow_manager.tracer.report()

        logger.info(
            f"[Capability] Page generated: {self.operator.applied} fragment(s) applied, "
            f"{self.operator.skipped} skipped, {len(self.last_summary.failed_modules)} module(s) failed"
        )

        if self.config.save_output:
            self.last_snapshot = await save_html_to_file(self.document.serialize(), input_text, self.config.output_dir)

    def _applier(self, observer: Optional[Callable[[Fragment, bool], None]]) -> Callable[[Fragment], bool]:
        if observer is None:
            return self.operator.apply

        def apply(fragment: Fragment) -> bool:
            landed = self.operator.apply(fragment)
            observer(fragment, landed)
            return landed

        return apply
