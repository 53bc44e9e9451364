# cmdflow/core/catalog.py
from __future__ import annotations

"""Node catalog
---------------
Static registry of every node kind: display label, description, editable
parameter fields and default parameter values. Consulted by the port model
and by whatever renders property forms. Pure data.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


# ---------- Kinds ----------


class NodeKind(str, Enum):
    # triggers
    hotkey_trigger = "hotkeyTrigger"
    timer_trigger = "timerTrigger"
    manual_trigger = "manualTrigger"
    window_trigger = "windowTrigger"
    # actions
    mouse_click = "mouseClick"
    mouse_move = "mouseMove"
    mouse_drag = "mouseDrag"
    mouse_wheel = "mouseWheel"
    mouse_down = "mouseDown"
    mouse_up = "mouseUp"
    keyboard_key = "keyboardKey"
    keyboard_input = "keyboardInput"
    keyboard_down = "keyboardDown"
    keyboard_up = "keyboardUp"
    shortcut = "shortcut"
    screenshot = "screenshot"
    gui_agent = "guiAgent"
    window_activate = "windowActivate"
    file_copy = "fileCopy"
    file_move = "fileMove"
    file_delete = "fileDelete"
    run_command = "runCommand"
    python_code = "pythonCode"
    clipboard_read = "clipboardRead"
    clipboard_write = "clipboardWrite"
    file_read_text = "fileReadText"
    file_write_text = "fileWriteText"
    show_message = "showMessage"
    delay = "delay"
    # control flow
    condition = "condition"
    loop = "loop"
    while_loop = "whileLoop"
    image_match = "imageMatch"
    # data
    var_define = "varDefine"
    var_set = "varSet"
    var_math = "varMath"
    var_get = "varGet"
    const_value = "constValue"


class FieldType(str, Enum):
    string = "string"
    number = "number"
    boolean = "boolean"
    select = "select"
    json = "json"
    text = "text"


TRIGGER_KINDS = frozenset({
    NodeKind.hotkey_trigger,
    NodeKind.timer_trigger,
    NodeKind.manual_trigger,
    NodeKind.window_trigger,
})


# ---------- Metadata ----------


@dataclass(frozen=True)
class SelectOption:
    label: str
    value: str


@dataclass(frozen=True)
class ParamField:
    key: str
    label: str
    type: FieldType
    placeholder: Optional[str] = None
    description: Optional[str] = None
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None
    options: tuple[SelectOption, ...] = ()


@dataclass(frozen=True)
class NodeMeta:
    label: str
    description: str
    fields: tuple[ParamField, ...] = ()
    default_params: dict[str, Any] = field(default_factory=dict)

    def defaults(self) -> dict[str, Any]:
        """Independent copy of the default params, safe to hand to a new node."""
        return copy.deepcopy(self.default_params)

    def field(self, key: str) -> Optional[ParamField]:
        for f in self.fields:
            if f.key == key:
                return f
        return None


# ---------- Field builders ----------


def _string(key: str, label: str, placeholder: Optional[str] = None, description: Optional[str] = None) -> ParamField:
    return ParamField(key, label, FieldType.string, placeholder=placeholder, description=description)


def _text(key: str, label: str, placeholder: Optional[str] = None, description: Optional[str] = None) -> ParamField:
    return ParamField(key, label, FieldType.text, placeholder=placeholder, description=description)


def _number(key: str, label: str, *, min: Optional[float] = None, max: Optional[float] = None,
            step: Optional[float] = None, description: Optional[str] = None) -> ParamField:
    return ParamField(key, label, FieldType.number, min=min, max=max, step=step, description=description)


def _boolean(key: str, label: str, description: Optional[str] = None) -> ParamField:
    return ParamField(key, label, FieldType.boolean, description=description)


def _json(key: str, label: str, description: Optional[str] = None) -> ParamField:
    return ParamField(key, label, FieldType.json, description=description)


def _select(key: str, label: str, *options: tuple[str, str]) -> ParamField:
    return ParamField(key, label, FieldType.select, options=tuple(SelectOption(lbl, val) for lbl, val in options))


_MOUSE_BUTTONS = (("Left", "left"), ("Right", "right"), ("Middle", "middle"))
_INPUT_MODES = (("Text", "literal"), ("Variable", "var"))
_OPERAND_TYPES = (("Variable", "var"), ("Literal", "literal"))
_COMPARISON_OPERATORS = (("==", "=="), ("!=", "!="), (">", ">"), (">=", ">="), ("<", "<"), ("<=", "<="))
_VALUE_TYPES = (("String", "string"), ("Number", "number"), ("Boolean", "boolean"), ("JSON", "json"))
_BOOLEAN_CHOICES = (("true", "true"), ("false", "false"))

_TEMPLATE_HINT = "Multi-line text; {{name}} placeholders are replaced with variable values."


def _comparison_fields(left: str, right: str) -> tuple[ParamField, ...]:
    return (
        _select("leftType", "Left operand type", *_OPERAND_TYPES),
        _string("left", "Left operand", placeholder=left),
        _select("operator", "Operator", *_COMPARISON_OPERATORS),
        _select("rightType", "Right operand type", *_OPERAND_TYPES),
        _string("right", "Right operand", placeholder=right),
    )


def _typed_value_fields(verb: str) -> tuple[ParamField, ...]:
    return (
        _select("valueType", "Value type", *_VALUE_TYPES),
        _string("valueString", f"{verb} (string)"),
        _number("valueNumber", f"{verb} (number)", step=1),
        _select("valueBoolean", f"{verb} (boolean)", *_BOOLEAN_CHOICES),
        _json("valueJson", f"{verb} (JSON)", description="Objects, arrays and other structured values."),
    )


_VAR_MATH_OPERATIONS = (
    "add", "sub", "mul", "div", "mod", "rem", "floorDiv", "pow", "max", "min", "hypot", "atan2",
    "eq", "ne", "gt", "ge", "lt", "le", "land", "lor", "lxor", "band", "bor", "bxor", "shl", "shr",
    "ushr", "neg", "abs", "sign", "square", "cube", "sqrt", "cbrt", "exp", "ln", "log2", "log10",
    "sin", "cos", "tan", "asin", "acos", "atan", "ceil", "floor", "round", "trunc", "frac", "recip",
    "lnot", "bnot", "set",
)


# ---------- Registry ----------


_CATALOG: dict[NodeKind, NodeMeta] = {
    NodeKind.hotkey_trigger: NodeMeta(
        label="Hotkey trigger",
        description="Starts the workflow when the hotkey is pressed.",
        default_params={"hotkey": "Ctrl+Shift+R"},
        fields=(_string("hotkey", "Hotkey", placeholder="Ctrl+Shift+R"),),
    ),
    NodeKind.timer_trigger: NodeMeta(
        label="Timer trigger",
        description="Starts the workflow on a fixed interval.",
        default_params={"intervalMs": 1000},
        fields=(_number("intervalMs", "Interval (ms)", min=0, step=100),),
    ),
    NodeKind.manual_trigger: NodeMeta(
        label="Manual trigger",
        description="Starts the workflow when Run is pressed.",
    ),
    NodeKind.window_trigger: NodeMeta(
        label="Window trigger",
        description="Starts the workflow when a matching window appears.",
        default_params={"title": "Untitled - Notepad", "matchMode": "contains"},
        fields=(
            _string("title", "Window title", placeholder="Untitled - Notepad"),
            _select("matchMode", "Match mode", ("Contains", "contains"), ("Exact", "exact")),
        ),
    ),
    NodeKind.mouse_click: NodeMeta(
        label="Mouse click",
        description="Moves the pointer to a coordinate and clicks.",
        default_params={"x": 0, "y": 0, "times": 1},
        fields=(
            _number("x", "X", step=1),
            _number("y", "Y", step=1),
            _number("times", "Clicks", min=1, step=1),
        ),
    ),
    NodeKind.mouse_move: NodeMeta(
        label="Mouse move",
        description="Moves the pointer to a coordinate.",
        default_params={"x": 0, "y": 0},
        fields=(_number("x", "X", step=1), _number("y", "Y", step=1)),
    ),
    NodeKind.mouse_drag: NodeMeta(
        label="Mouse drag",
        description="Drags with the left button held from one point to another.",
        default_params={"fromX": 0, "fromY": 0, "toX": 200, "toY": 200},
        fields=(
            _number("fromX", "From X", step=1),
            _number("fromY", "From Y", step=1),
            _number("toX", "To X", step=1),
            _number("toY", "To Y", step=1),
        ),
    ),
    NodeKind.mouse_wheel: NodeMeta(
        label="Mouse wheel",
        description="Scrolls the wheel by a number of steps.",
        default_params={"vertical": -1},
        fields=(_number("vertical", "Steps", step=1),),
    ),
    NodeKind.mouse_down: NodeMeta(
        label="Mouse down",
        description="Moves to a coordinate and presses a button without releasing it.",
        default_params={"x": 0, "y": 0, "button": "left"},
        fields=(_number("x", "X", step=1), _number("y", "Y", step=1), _select("button", "Button", *_MOUSE_BUTTONS)),
    ),
    NodeKind.mouse_up: NodeMeta(
        label="Mouse up",
        description="Moves to a coordinate and releases a button.",
        default_params={"x": 0, "y": 0, "button": "left"},
        fields=(_number("x", "X", step=1), _number("y", "Y", step=1), _select("button", "Button", *_MOUSE_BUTTONS)),
    ),
    NodeKind.keyboard_key: NodeMeta(
        label="Key press",
        description="Taps a single key.",
        default_params={"key": "Enter"},
        fields=(_string("key", "Key", placeholder="Enter"),),
    ),
    NodeKind.keyboard_input: NodeMeta(
        label="Type text",
        description="Types a piece of text.",
        default_params={"text": "Hello CommandFlow"},
        fields=(_string("text", "Text", placeholder="Text to type"),),
    ),
    NodeKind.keyboard_down: NodeMeta(
        label="Key down",
        description="Holds a key down, optionally simulating auto-repeat.",
        default_params={"key": "Shift", "simulateRepeat": False, "repeatCount": 8, "repeatIntervalMs": 35},
        fields=(
            _string("key", "Key", placeholder="Shift"),
            _boolean("simulateRepeat", "Simulate auto-repeat"),
            _number("repeatCount", "Repeat count", min=1, step=1),
            _number("repeatIntervalMs", "Repeat interval (ms)", min=1, step=1),
        ),
    ),
    NodeKind.keyboard_up: NodeMeta(
        label="Key up",
        description="Releases a key.",
        default_params={"key": "Shift"},
        fields=(_string("key", "Key", placeholder="Shift"),),
    ),
    NodeKind.shortcut: NodeMeta(
        label="Shortcut",
        description="Presses modifier keys together with a main key.",
        default_params={"modifiers": ["Ctrl"], "key": "S"},
        fields=(
            _json("modifiers", "Modifiers (JSON array)", description='For example ["Ctrl", "Shift"]'),
            _string("key", "Key", placeholder="S"),
        ),
    ),
    NodeKind.screenshot: NodeMeta(
        label="Screenshot",
        description="Captures the screen, optionally saving it, and outputs the image as base64.",
        default_params={"shouldSave": True, "saveDir": "", "fullscreen": False, "width": 320, "height": 240},
        fields=(
            _boolean("shouldSave", "Save to disk"),
            _string("saveDir", "Save folder", placeholder="D:\\captures"),
            _boolean("fullscreen", "Full screen"),
            _number("width", "Width", min=1, step=1),
            _number("height", "Height", min=1, step=1),
        ),
    ),
    NodeKind.gui_agent: NodeMeta(
        label="GUI agent",
        description="Asks a multimodal model to read a screenshot and perform the next GUI action.",
        default_params={
            "imageInput": "",
            "baseUrl": "https://api.openai.com/v1/chat/completions",
            "apiKey": "",
            "model": "gpt-4.1-mini",
            "stripThink": True,
            "instruction": "Perform the next step based on the screenshot.",
            "systemPrompt": "You are a GUI agent. Perform the next action to complete the task.\n\n"
                            "## User Instruction\n{instruction}",
        },
        fields=(
            _string("baseUrl", "Base URL", placeholder="https://api.openai.com/v1/chat/completions"),
            _string("apiKey", "API key", placeholder="sk-***"),
            _string("model", "Model", placeholder="gpt-4.1-mini"),
            _boolean("stripThink", "Strip <think> sections"),
            _string("imageInput", "Image (base64)", placeholder="Wire an image or paste base64"),
            _string("instruction", "Instruction", placeholder="Click the login button"),
            _text("systemPrompt", "System prompt", placeholder="{instruction} is replaced with the instruction"),
        ),
    ),
    NodeKind.window_activate: NodeMeta(
        label="Switch window",
        description="Activates a window by title or cycles windows with a shortcut.",
        default_params={
            "switchMode": "title",
            "title": "CommandFlow",
            "shortcut": "Alt+Tab",
            "shortcutTimes": 1,
            "shortcutIntervalMs": 120,
        },
        fields=(
            _select("switchMode", "Switch by", ("Window title", "title"), ("Shortcut", "shortcut")),
            _string("title", "Window title", placeholder="CommandFlow"),
            _select(
                "shortcut", "Shortcut",
                ("Alt + Tab", "Alt+Tab"), ("Alt + Shift + Tab", "Alt+Shift+Tab"), ("Win + Tab", "Win+Tab"),
                ("Ctrl + Tab", "Ctrl+Tab"), ("Ctrl + Shift + Tab", "Ctrl+Shift+Tab"),
            ),
            _number("shortcutTimes", "Shortcut presses", min=1, step=1),
            _number("shortcutIntervalMs", "Shortcut interval (ms)", min=1, step=1),
        ),
    ),
    NodeKind.file_copy: NodeMeta(
        label="Copy file/folder",
        description="Copies a file or directory to a target path.",
        default_params={"sourcePath": "", "targetPath": "", "overwrite": False, "recursive": True},
        fields=(
            _string("sourcePath", "Source path", placeholder="C:\\input\\a.txt"),
            _string("targetPath", "Target path", placeholder="D:\\output\\a.txt"),
            _boolean("overwrite", "Overwrite existing target"),
            _boolean("recursive", "Copy directories recursively"),
        ),
    ),
    NodeKind.file_move: NodeMeta(
        label="Move file/folder",
        description="Moves a file or directory to a target path.",
        default_params={"sourcePath": "", "targetPath": "", "overwrite": False},
        fields=(
            _string("sourcePath", "Source path", placeholder="C:\\input\\a.txt"),
            _string("targetPath", "Target path", placeholder="D:\\output\\a.txt"),
            _boolean("overwrite", "Overwrite existing target"),
        ),
    ),
    NodeKind.file_delete: NodeMeta(
        label="Delete file/folder",
        description="Deletes a file or directory.",
        default_params={"path": "", "recursive": True},
        fields=(
            _string("path", "Path", placeholder="D:\\temp\\old-folder"),
            _boolean("recursive", "Delete directories recursively"),
        ),
    ),
    NodeKind.run_command: NodeMeta(
        label="Run command",
        description="Runs a command in the system shell.",
        default_params={"command": "echo CommandFlow", "shell": True},
        fields=(_string("command", "Command", placeholder="echo Hello"), _boolean("shell", "Run through shell")),
    ),
    NodeKind.python_code: NodeMeta(
        label="Run Python",
        description="Runs code with the system Python.",
        default_params={"code": 'print("Hello CommandFlow")'},
        fields=(_text("code", "Python code", placeholder='print("Hello")',
                      description="Output is written to the execution log."),),
    ),
    NodeKind.clipboard_read: NodeMeta(
        label="Read clipboard",
        description="Reads clipboard text into a variable.",
        default_params={"outputVar": "clipboardText"},
        fields=(_string("outputVar", "Output variable", placeholder="clipboardText",
                        description="Leave empty to only log the text."),),
    ),
    NodeKind.clipboard_write: NodeMeta(
        label="Write clipboard",
        description="Writes text to the clipboard.",
        default_params={"inputMode": "literal", "inputText": "Hello from CommandFlow", "inputVar": "clipboardText"},
        fields=(
            _select("inputMode", "Source", *_INPUT_MODES),
            _text("inputText", "Text", placeholder=_TEMPLATE_HINT),
            _string("inputVar", "Variable", placeholder="clipboardText"),
        ),
    ),
    NodeKind.file_read_text: NodeMeta(
        label="Read text file",
        description="Reads a UTF-8 text file into a variable.",
        default_params={"path": "", "outputVar": "fileText"},
        fields=(
            _string("path", "File path", placeholder="C:\\temp\\note.txt"),
            _string("outputVar", "Output variable", placeholder="fileText",
                    description="Leave empty to only log the text."),
        ),
    ),
    NodeKind.file_write_text: NodeMeta(
        label="Write text file",
        description="Writes text to a UTF-8 file, optionally appending.",
        default_params={
            "path": "",
            "inputMode": "literal",
            "inputText": "Hello File",
            "inputVar": "fileText",
            "append": False,
            "createParentDir": True,
        },
        fields=(
            _string("path", "File path", placeholder="D:\\output\\result.txt"),
            _select("inputMode", "Source", *_INPUT_MODES),
            _text("inputText", "Text", placeholder=_TEMPLATE_HINT),
            _string("inputVar", "Variable", placeholder="fileText"),
            _boolean("append", "Append"),
            _boolean("createParentDir", "Create parent directory"),
        ),
    ),
    NodeKind.show_message: NodeMeta(
        label="Show message",
        description="Shows a system message box.",
        default_params={
            "title": "CommandFlow",
            "inputMode": "literal",
            "inputText": "Done",
            "inputVar": "messageText",
            "level": "info",
        },
        fields=(
            _string("title", "Title", placeholder="CommandFlow"),
            _select("inputMode", "Source", *_INPUT_MODES),
            _text("inputText", "Message", placeholder=_TEMPLATE_HINT),
            _string("inputVar", "Variable", placeholder="messageText"),
            _select("level", "Level", ("Info", "info"), ("Warning", "warning"), ("Error", "error")),
        ),
    ),
    NodeKind.delay: NodeMeta(
        label="Delay",
        description="Pauses before continuing.",
        default_params={"ms": 500},
        fields=(_number("ms", "Milliseconds", min=0, step=100),),
    ),
    NodeKind.condition: NodeMeta(
        label="Condition",
        description="if branch.",
        default_params={"leftType": "var", "left": "counter", "operator": "==", "rightType": "literal", "right": "1"},
        fields=_comparison_fields("counter", "1"),
    ),
    NodeKind.loop: NodeMeta(
        label="For loop",
        description="Runs the loop branch a fixed number of times.",
        default_params={"times": 3},
        fields=(_number("times", "Iterations", min=0, step=1),),
    ),
    NodeKind.while_loop: NodeMeta(
        label="While loop",
        description="Runs the loop branch while the condition holds.",
        default_params={
            "leftType": "var",
            "left": "counter",
            "operator": "<",
            "rightType": "literal",
            "right": "10",
            "maxIterations": 1000,
        },
        fields=_comparison_fields("counter", "10") + (
            _number("maxIterations", "Max iterations", min=1, step=1,
                    description="Stops a condition that never turns false."),
        ),
    ),
    NodeKind.image_match: NodeMeta(
        label="Image match",
        description="Looks for a template image in a screenshot or source image.",
        default_params={
            "sourcePath": "",
            "templatePath": "",
            "threshold": 0.99,
            "timeoutMs": 10000,
            "pollMs": 16,
            "confirmFrames": 2,
            "clickOnMatch": False,
            "clickTimes": 1,
        },
        fields=(
            _string("sourcePath", "Source image (empty = live screenshot)", placeholder="D:\\screens\\current.png"),
            _string("templatePath", "Template image", placeholder="D:\\templates\\button.png"),
            _number("threshold", "Threshold (0-1)", min=0, max=1, step=0.01),
            _number("timeoutMs", "Timeout (ms)", min=0, step=100),
            _number("pollMs", "Poll interval (ms)", min=1, step=1),
            _number("confirmFrames", "Confirm frames", min=1, step=1,
                    description="Consecutive hits required before the match counts."),
            _boolean("clickOnMatch", "Click on match"),
            _number("clickTimes", "Clicks", min=1, step=1),
        ),
    ),
    NodeKind.var_define: NodeMeta(
        label="Define variable",
        description="Defines a variable with an initial value.",
        default_params={
            "name": "counter",
            "valueType": "number",
            "valueString": "hello",
            "valueNumber": 0,
            "valueBoolean": "false",
            "valueJson": "null",
            "value": 0,
        },
        fields=(_string("name", "Variable name", placeholder="counter"),) + _typed_value_fields("Initial value"),
    ),
    NodeKind.var_set: NodeMeta(
        label="Set variable",
        description="Assigns a new value to a variable.",
        default_params={
            "name": "counter",
            "valueType": "number",
            "valueString": "world",
            "valueNumber": 1,
            "valueBoolean": "false",
            "valueJson": "null",
            "value": 1,
        },
        fields=(_string("name", "Variable name", placeholder="counter"),) + _typed_value_fields("New value"),
    ),
    NodeKind.var_math: NodeMeta(
        label="Variable math",
        description="Applies a numeric operation to a variable.",
        default_params={
            "name": "counter",
            "operation": "add",
            "operandType": "number",
            "operandNumber": 1,
            "operandString": "1",
            "operandBoolean": "false",
            "operandJson": "1",
            "operand": 1,
            "assignToVariable": True,
        },
        fields=(
            _string("name", "Variable name", placeholder="counter"),
            _select("operation", "Operation", *((op, op) for op in _VAR_MATH_OPERATIONS)),
            _select("operandType", "Operand type", ("Number", "number"), ("String", "string"),
                    ("Boolean", "boolean"), ("JSON", "json")),
            _number("operandNumber", "Operand (number)", step=1, description="Ignored by unary operations."),
            _string("operandString", "Operand (string)", placeholder="1"),
            _select("operandBoolean", "Operand (boolean)", *_BOOLEAN_CHOICES),
            _json("operandJson", "Operand (JSON)"),
            _boolean("assignToVariable", "Assign back to the variable",
                     description="When off the result is only logged."),
        ),
    ),
    NodeKind.var_get: NodeMeta(
        label="Get variable",
        description="Pure output: emits the current value of a variable.",
        default_params={"name": "counter"},
        fields=(_string("name", "Variable name", placeholder="counter"),),
    ),
    NodeKind.const_value: NodeMeta(
        label="Constant",
        description="Pure output: emits a fixed value.",
        default_params={
            "valueType": "number",
            "valueString": "hello",
            "valueNumber": 1,
            "valueBoolean": "false",
            "valueJson": "null",
            "value": 1,
        },
        fields=_typed_value_fields("Constant"),
    ),
}


# ---------- Public API ----------


def get_meta(kind: NodeKind | str) -> NodeMeta:
    return _CATALOG[NodeKind(kind)]


def all_kinds() -> list[NodeKind]:
    return list(_CATALOG)


def is_trigger(kind: NodeKind | str) -> bool:
    return NodeKind(kind) in TRIGGER_KINDS


def is_manual_trigger(kind: NodeKind | str) -> bool:
    return NodeKind(kind) is NodeKind.manual_trigger
