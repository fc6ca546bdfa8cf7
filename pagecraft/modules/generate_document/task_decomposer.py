from pagecraft.modules.generate_document.interfaces import (
    FragmentTask,
    FragmentType,
    ParsedModule,
    TaskContext,
)

MODULE_ID_PREFIX = "module"


def module_container_id(ordinal: int) -> str:
    return f"{MODULE_ID_PREFIX}{ordinal}"


def create_module_task(module: ParsedModule, design_system_info: str, ordinal: int) -> FragmentTask:
    """
    Bind a parsed module to its container and build its generation task.

    Pure: the input module is not modified, the task carries a copy with
    parent_id = "module{ordinal}".
    """
    bound = module.model_copy(update={"parent_id": module_container_id(ordinal)})
    return FragmentTask(
        module=bound,
        context=TaskContext(page_goal=bound.name, design_system_info=design_system_info),
        fragment_type=FragmentType.HTML,
    )
