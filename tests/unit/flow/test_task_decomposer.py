"""
Unit Tests for the Task Decomposer and fragment serialization
"""
from pagecraft.modules.generate_document.interfaces import (
    CssFragment,
    FragmentType,
    HeaderFragment,
    HtmlFragment,
    ModuleFragment,
    ParsedModule,
    fragment_to_dict,
)
from pagecraft.modules.generate_document.task_decomposer import create_module_task, module_container_id


class TestCreateModuleTask:
    """Test binding of modules to their containers"""

    def setup_method(self):
        self.module = ParsedModule(name="Keypad", layout="display:grid;", description="digits")

    def test_parent_id_from_ordinal(self):
        """Test that the container id is module + zero-based ordinal"""
        task = create_module_task(self.module, "dark", 0)

        assert task.module.parent_id == "module0"
        assert task.id == "module0"
        assert create_module_task(self.module, "dark", 7).id == "module7"
        assert module_container_id(3) == "module3"

    def test_context(self):
        """Test that the theme and the module name travel in the context"""
        task = create_module_task(self.module, "dark, neon accents", 1)

        assert task.context.design_system_info == "dark, neon accents"
        assert task.context.page_goal == "Keypad"
        assert task.fragment_type == FragmentType.HTML

    def test_input_module_untouched(self):
        """Test that decomposition has no side effects"""
        create_module_task(self.module, "dark", 4)

        assert self.module.parent_id is None

    def test_deterministic(self):
        """Test that the same input always gives the same task"""
        assert create_module_task(self.module, "dark", 2) == create_module_task(self.module, "dark", 2)

    def test_worker_input(self):
        """Test the JSON shape handed to the worker model"""
        task = create_module_task(self.module, "dark", 2)

        assert task.module.to_worker_input() == {
            "name": "Keypad",
            "layout": "display:grid;",
            "description": "digits",
            "parentId": "module2",
        }


class TestFragmentToDict:
    """Test the wire form of emitted fragments"""

    def test_each_fragment_type(self):
        assert fragment_to_dict(HeaderFragment(content="width:1px")) == {"type": "header", "content": "width:1px"}
        assert fragment_to_dict(ModuleFragment(id="module0", content="a:b")) == {
            "type": "module", "content": "a:b", "id": "module0"
        }
        assert fragment_to_dict(HtmlFragment(parent_id="keys", content="<b>1</b>")) == {
            "type": "html", "content": "<b>1</b>", "parentId": "keys"
        }
        assert fragment_to_dict(CssFragment(content=".a{}")) == {"type": "css", "content": ".a{}"}
