"""
Fragment generation for one module task.

Calls the worker model with the module as JSON input, feeds every text
chunk to a private fragment parser and yields HTML/CSS fragments as soon as
the parser completes them.
"""

import json
from typing import AsyncIterator, List, Optional

from pagecraft.core.config import GenerationConfig
from pagecraft.core.exceptions import RecordValidationError
from pagecraft.core.logging_config import logger
from pagecraft.modules.generate_document.interfaces import (
    CssFragment,
    Fragment,
    FragmentSink,
    FragmentTask,
    HtmlFragment,
)
from pagecraft.modules.generate_document.parsers.fragment_parser import StreamFragmentParser
from pagecraft.modules.generate_document.prompts import build_worker_prompt
from pagecraft.utils.llm_client import iterate_with_timeout


class _FragmentCollector(FragmentSink):
    """Buffers parser events until the generator hands them out"""

    def __init__(self):
        self.pending: List[Fragment] = []
        self.ended = False
        self.record_errors = 0

    def on_html_node(self, parent_id: Optional[str], html: str) -> None:
        self.pending.append(HtmlFragment(parent_id=parent_id, content=html))

    def on_css_rule(self, css_text: str) -> None:
        self.pending.append(CssFragment(content=css_text))

    def on_stream_end(self) -> None:
        self.ended = True

    def on_record_error(self, error: RecordValidationError) -> None:
        self.record_errors += 1

    def drain(self) -> List[Fragment]:
        fragments, self.pending = self.pending, []
        return fragments


async def generate_fragment_stream(task: FragmentTask, llm_client, config: GenerationConfig) -> AsyncIterator[Fragment]:
    """
    Yield the fragments of one module in the order the model produced them.

    Raises:
        GenerationTimeoutError: no chunk within config.chunk_timeout
        ProtocolViolationError: the stream left an unparseable remainder
    """
    system_prompt = build_worker_prompt(task, config.protocol)
    worker_input = json.dumps(task.module.to_worker_input(), ensure_ascii=False)

    collector = _FragmentCollector()
    parser = StreamFragmentParser(
        task_id=task.id,
        sink=collector,
        root_parent_id=task.module.parent_id,
        protocol=config.protocol,
        max_buffer_size=config.max_buffer_size,
    )

    logger.debug(f"[Fragment Generator] {task.id}: calling worker with input {worker_input[:120]}")
    stream = llm_client.stream(
        worker_input,
        system_prompt=system_prompt,
        model=config.worker_model,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
    )

    try:
        async for chunk in iterate_with_timeout(stream, config.chunk_timeout, task.id):
            if chunk.is_text:
                parser.feed(chunk.text)
            else:
                logger.debug(
                    f"[Fragment Generator] {task.id}: usage in={chunk.input_tokens} out={chunk.output_tokens}"
                )
            for fragment in collector.drain():
                yield fragment

        parser.finish()
        for fragment in collector.drain():
            yield fragment
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()

    if collector.record_errors:
        logger.warning(f"[Fragment Generator] {task.id}: {collector.record_errors} record(s) dropped")
