from pagecraft.modules.generate_document.prompts.planner_prompt import build_planner_prompt
from pagecraft.modules.generate_document.prompts.worker_prompt import build_worker_prompt

__all__ = ["build_planner_prompt", "build_worker_prompt"]
