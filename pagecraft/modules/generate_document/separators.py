"""Wire tokens of the marker-delimited framing"""

# Planner stream
PLANNER_HEADER_MARKER = "H:"
PLANNER_MODULE_MARKER = "M:"
PLANNER_END_MARKER = "E:"

# Fragment stream
S_HTML_START = "SH#"
S_NODE_START = "N:"
S_CSS_START = "CS:"
S_HTML_END = "EH#"

# Parent ids meaning "the module container handed to the worker"
NULL_PARENT_TOKENS = ("NULL_PARENT", "null")

# Field names of the record framing
RECORD_TYPE_FIELD = "type"
PLAN_HEADER_TYPE = "planHeader"
PLAN_MODULE_TYPE = "planModule"
HTML_NODE_TYPE = "htmlNode"
CSS_RULE_TYPE = "cssRule"
