"""In-memory stand-in for the browser binding used across the test-suite."""

import re

_COMPOUND_RE = re.compile(r"^(?P<tag>[a-zA-Z][\w-]*|\*)?(?P<rest>.*)$")
_PART_RE = re.compile(
    r"#(?P<id>[\w-]+)|\.(?P<cls>[\w-]+)|\[(?P<attr>[\w-]+)(?:(?P<op>\*?=)'(?P<val>[^']*)')?\]"
)


def _parse_compound(text):
    match = _COMPOUND_RE.match(text)
    tag = (match.group("tag") or "*").lower()
    rest = match.group("rest")
    parts = []
    pos = 0
    while pos < len(rest):
        part = _PART_RE.match(rest, pos)
        if part is None:
            raise ValueError(f"unsupported selector: {text!r}")
        parts.append(part)
        pos = part.end()
    return tag, parts


def _matches_compound(node, compound):
    if not isinstance(node, FakeNode):
        return False
    tag, parts = _parse_compound(compound)
    if tag != "*" and node.tag != tag:
        return False
    for part in parts:
        if part.group("id") and node.attrs.get("id") != part.group("id"):
            return False
        if part.group("cls") and part.group("cls") not in node.attrs.get("class", "").split():
            return False
        attr = part.group("attr")
        if attr:
            if attr not in node.attrs:
                return False
            op, val = part.group("op"), part.group("val")
            if op == "=" and node.attrs[attr] != val:
                return False
            if op == "*=" and val not in node.attrs[attr]:
                return False
    return True


def matches(node, selector):
    for alternative in selector.split(","):
        compounds = alternative.split()
        if not compounds or not _matches_compound(node, compounds[-1]):
            continue
        remaining = compounds[:-1]
        ancestor = node.parent
        while remaining and isinstance(ancestor, FakeNode):
            if _matches_compound(ancestor, remaining[-1]):
                remaining.pop()
            ancestor = ancestor.parent
        if not remaining:
            return True
    return False


class FakeNode:
    def __init__(self, tag, attrs=None, children=(), text="", rect=(0, 0, 100, 20), props=None):
        self.tag = tag.lower()
        self.attrs = dict(attrs or {})
        self.props = dict(props or {})
        self.text = text
        self.rect = rect
        self.parent = None
        self.children = []
        self.shadow = None
        self.readonly_attrs = set()
        self.handlers = {}
        for child in children:
            self.append(child)

    def __repr__(self):
        return f"<FakeNode {self.tag} {self.attrs}>"

    def append(self, child):
        child.parent = self
        self.children.append(child)
        return child

    def attach_shadow(self, *children):
        self.shadow = FakeShadowRoot(self, children)
        return self.shadow

    def on(self, event, fn):
        self.handlers.setdefault(event, []).append(fn)
        return self

    def fire(self, event):
        for fn in self.handlers.get(event, []):
            fn(self)

    def descendants(self):
        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


class FakeShadowRoot:
    def __init__(self, host, children):
        self.host = host
        self.children = []
        for child in children:
            child.parent = self
            self.children.append(child)

    def descendants(self):
        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


class FakeBrowser:
    def __init__(self, root=None):
        self.root = root or FakeNode("html")
        self.calls = []
        self.subscribed = False
        self.pending_changes = 0
        self.text_hook = None

    # tree
    def document_root(self):
        return self.root

    def query_all(self, scope, selector):
        return [n for n in scope.descendants() if matches(n, selector)]

    def children(self, node):
        return list(node.children)

    def inner_scope(self, node):
        return node.shadow if isinstance(node, FakeNode) else None

    def closest(self, node, selector):
        current = node
        while isinstance(current, FakeNode):
            if matches(current, selector):
                return current
            current = current.parent
        return None

    def get_rect(self, node):
        return getattr(node, "rect", None)

    def tag_name(self, node):
        return getattr(node, "tag", "")

    # attributes and properties
    def get_attribute(self, node, name):
        return node.attrs.get(name)

    def has_attribute(self, node, name):
        return name in node.attrs

    def set_attribute(self, node, name, value):
        self.calls.append(("set_attribute", node, name, value))
        if name in node.readonly_attrs:
            return
        node.attrs[name] = value

    def has_property(self, node, name):
        return name in node.props

    def get_property(self, node, name):
        return node.props.get(name)

    def set_property(self, node, name, value):
        self.calls.append(("set_property", node, name, value))
        node.props[name] = value

    def class_names(self, node):
        return node.attrs.get("class", "").split()

    # activation
    def click(self, node):
        self.calls.append(("click", node))
        node.fire("click")

    def dispatch_event(self, node, event_type):
        self.calls.append(("event", node, event_type))
        node.fire(event_type)

    def scroll_into_view(self, node):
        self.calls.append(("scroll", node))

    def focus(self, node):
        self.calls.append(("focus", node))

    def press_space(self, node):
        self.calls.append(("space", node))
        node.fire("keydown")
        node.fire("keyup")

    # item content
    def text_fragments(self, item, selector):
        if self.text_hook is not None:
            self.text_hook(item)
        return [n.text.strip() for n in self.query_all(item, selector)]

    def image_source(self, item, selector):
        found = self.query_all(item, selector)
        return found[0].attrs.get("src") if found else None

    def mark_item(self, item, reasons):
        item.attrs["data-sweeper-reasons"] = " + ".join(reasons)

    def unmark_item(self, item):
        item.attrs.pop("data-sweeper-reasons", None)

    # change notifications
    def subscribe_changes(self):
        self.subscribed = True

    def unsubscribe_changes(self):
        self.subscribed = False
        self.pending_changes = 0

    def mutate(self, count=1):
        if self.subscribed:
            self.pending_changes += count

    def poll_changes(self):
        count = self.pending_changes
        self.pending_changes = 0
        return count

    def clicks(self):
        return [c[1] for c in self.calls if c[0] == "click"]


def clickable_checkbox(checked=False):
    box = FakeNode("ytcp-checkbox", {"aria-checked": "true" if checked else "false"})

    def toggle(node):
        node.attrs["aria-checked"] = "false" if node.attrs["aria-checked"] == "true" else "true"

    return box.on("click", toggle)


def stubborn_checkbox():
    box = FakeNode("ytcp-checkbox", {"aria-checked": "false"})
    box.readonly_attrs.add("aria-checked")
    return box


def inner_input_checkbox():
    """Host that only follows its shadow input's change event."""
    box = FakeNode("ytcp-checkbox", {"aria-checked": "false"}, props={"checked": False})
    inner = FakeNode("input", {"type": "checkbox"}, props={"checked": False})

    def sync(node):
        box.attrs["aria-checked"] = "true" if node.props.get("checked") else "false"

    inner.on("change", sync)
    box.attach_shadow(inner)
    return box


def comment_row(text="", avatar=None, checkbox=None, tag="ytcp-comment-thread"):
    body = FakeNode("div", {"id": "body"})
    if avatar is not None:
        body.append(FakeNode("yt-img-shadow", children=[FakeNode("img", {"src": avatar})]))
    body.append(FakeNode("yt-formatted-string", {"id": "content-text"}, text=text))
    body.append(FakeNode("span", {"class": "toolbar"}, text="Reply"))
    row = FakeNode(tag, children=[body])
    if checkbox is not None:
        row.append(checkbox)
    return row


def page_with_rows(rows):
    root = FakeNode("html")
    container = root.append(FakeNode("ytcp-comments"))
    for row in rows:
        container.append(row)
    return root
