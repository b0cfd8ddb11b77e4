"""
In-page JavaScript sent through ``driver.execute_script``.

Everything that touches framework internals (prototype setters, the
``_valueTracker`` shadow, tagged synthetic events, page-side guard flags)
lives here so the Python side only deals with named snippets.

Page-side globals: ``__ctlFillQuietDepth`` / ``__ctlFillQuietUntil`` (quiet flag, ms deadline),
``__ctlFillGuards`` (installed selection blockers by token) and
``__ctlFillChanges`` (watcher queues by key).  Dispatched events carry their
origin tag as ``__ctlFillOrigin``.
"""

READ_STATE = """
const el = arguments[0];
return {
  value: (el.value === undefined || el.value === null) ? null : String(el.value),
  checked: el.checked === true,
  attr: el.getAttribute ? el.getAttribute('value') : null,
  connected: el.isConnected === true,
};
"""

# Write through the prototype property setter so an instance-level
# interceptor installed by the framework never sees the write.
SET_NATIVE_VALUE = """
const el = arguments[0];
const value = arguments[1];
const prop = arguments[2];  // 'value' | 'checked'
let proto = null;
if (window.HTMLTextAreaElement && el instanceof HTMLTextAreaElement) {
  proto = HTMLTextAreaElement.prototype;
} else if (window.HTMLSelectElement && el instanceof HTMLSelectElement) {
  proto = HTMLSelectElement.prototype;
} else if (window.HTMLInputElement && el instanceof HTMLInputElement) {
  proto = HTMLInputElement.prototype;
}
const desc = proto ? Object.getOwnPropertyDescriptor(proto, prop) : null;
if (desc && typeof desc.set === 'function') {
  desc.set.call(el, value);
  return 'native';
}
el[prop] = value;
return 'assign';
"""

SPOOF_TRACKER = """
const el = arguments[0];
const previous = arguments[1];
const tracker = el._valueTracker;
if (!tracker || typeof tracker.setValue !== 'function') {
  return false;
}
tracker.setValue(previous);
return true;
"""

# The origin tag rides on the event object itself (non-enumerable).
# A click on a checkable input must not leave it flipped away from the
# value that was just written, so the pre-dispatch state is restored.
DISPATCH_EVENT = """
const el = arguments[0];
const kind = arguments[1];
const origin = arguments[2];
const bubbles = arguments[3] !== false;
const cancelable = arguments[4] !== false;
const init = {bubbles: bubbles, cancelable: cancelable};
let ev;
if (kind === 'click') {
  ev = new MouseEvent('click', Object.assign({view: window}, init));
} else if (kind === 'blur') {
  ev = new FocusEvent('blur', init);
} else {
  ev = new Event(kind, init);
}
Object.defineProperty(ev, '__ctlFillOrigin', {value: origin, enumerable: false});
const checkable = kind === 'click' && (el.type === 'checkbox' || el.type === 'radio');
const before = checkable ? el.checked : null;
el.dispatchEvent(ev);
if (checkable && el.checked !== before) {
  const desc = Object.getOwnPropertyDescriptor(HTMLInputElement.prototype, 'checked');
  desc.set.call(el, before);
}
return true;
"""

# Page mirror of the Python-side quiet SuppressionFlag: raised while any
# holder is inside, and until the cooldown deadline after the last leaves.
ENTER_QUIET = """
window.__ctlFillQuietDepth = (window.__ctlFillQuietDepth || 0) + 1;
return window.__ctlFillQuietDepth;
"""

LEAVE_QUIET = """
const ms = arguments[0];
window.__ctlFillQuietDepth = Math.max((window.__ctlFillQuietDepth || 0) - 1, 0);
window.__ctlFillQuietUntil = Math.max(window.__ctlFillQuietUntil || 0, Date.now() + ms);
return window.__ctlFillQuietDepth;
"""

REMOVE_VALUE_ATTR = """
arguments[0].removeAttribute('value');
return true;
"""

SET_VALUE_ATTR = """
arguments[0].setAttribute('value', arguments[1]);
return true;
"""

# Local mid-day keeps the calendar day stable under UTC normalisation.
SET_VALUE_AS_DATE = """
const el = arguments[0];
const y = arguments[1], m = arguments[2], d = arguments[3], hour = arguments[4];
try {
  el.valueAsDate = new Date(y, m - 1, d, hour, 0, 0, 0);
} catch (e) {
  return null;
}
return el.value;
"""

SET_MIRROR_TEXT = """
const el = arguments[0];
const containerSel = arguments[1];
const textSel = arguments[2];
const text = arguments[3];
const box = el.closest ? el.closest(containerSel) : null;
if (!box) {
  return false;
}
const node = box.querySelector(textSel);
if (!node) {
  return false;
}
if (node.textContent !== text) {
  node.textContent = text;
}
return true;
"""

DOCUMENT_READY_STATE = "return document.readyState;"

SCROLL_INTO_VIEW = "arguments[0].scrollIntoView({block:'center', inline:'center'});"

JS_CLICK = "arguments[0].click();"

# Synthetic press outside the panel bounds (dismisses popovers that close on
# outside mousedown/click).
CLICK_OUTSIDE = """
const panel = arguments[0];
const r = panel.getBoundingClientRect();
let x = Math.max(0, r.left - 10);
let y = Math.max(0, r.top - 10);
if (x === 0 && y === 0 && r.left <= 0 && r.top <= 0) {
  x = Math.min(window.innerWidth - 1, r.right + 10);
  y = Math.min(window.innerHeight - 1, r.bottom + 10);
}
let target = document.elementFromPoint(x, y) || document.body;
if (panel.contains(target)) {
  target = document.body;
}
const init = {bubbles: true, cancelable: true, clientX: x, clientY: y, view: window};
target.dispatchEvent(new MouseEvent('mousedown', init));
target.dispatchEvent(new MouseEvent('mouseup', init));
target.dispatchEvent(new MouseEvent('click', init));
return true;
"""

# Capture-phase blocker for clicks on *other* picker containers.  A
# container is recognised by holding every capability selector.
INSTALL_SELECTION_GUARD = """
const active = arguments[0];
const caps = arguments[1];
const token = arguments[2];
const isPicker = (node) => caps.every((sel) => {
  try { return !!node.querySelector(sel); } catch (e) { return false; }
});
const block = (ev) => {
  let node = ev.target instanceof Element ? ev.target : null;
  while (node && node !== document.body) {
    if (node === active || node.contains(active)) {
      return;
    }
    if (isPicker(node)) {
      ev.stopImmediatePropagation();
      ev.preventDefault();
      return;
    }
    node = node.parentElement;
  }
};
window.__ctlFillGuards = window.__ctlFillGuards || {};
window.__ctlFillGuards[token] = block;
document.addEventListener('click', block, true);
document.addEventListener('mousedown', block, true);
return token;
"""

REMOVE_SELECTION_GUARD = """
const token = arguments[0];
const guards = window.__ctlFillGuards || {};
const block = guards[token];
if (!block) {
  return false;
}
document.removeEventListener('click', block, true);
document.removeEventListener('mousedown', block, true);
delete guards[token];
return true;
"""

# Records value changes on a source field.  Events carry their own origin
# tag; attribute mutations fall back to the page-side quiet flag.
INSTALL_CHANGE_WATCHER = """
const el = arguments[0];
const key = arguments[1];
window.__ctlFillChanges = window.__ctlFillChanges || {};
if (window.__ctlFillChanges[key]) {
  return false;
}
const queue = [];
window.__ctlFillChanges[key] = queue;
const quiet = () => (window.__ctlFillQuietDepth || 0) > 0 || Date.now() < (window.__ctlFillQuietUntil || 0);
const onEvent = (ev) => {
  const origin = ev.__ctlFillOrigin || 'user';
  queue.push({value: String(el.value), origin: origin, source: ev.type});
};
el.addEventListener('input', onEvent);
el.addEventListener('change', onEvent);
const observer = new MutationObserver(() => {
  queue.push({
    value: String(el.getAttribute('value') || el.value || ''),
    origin: quiet() ? 'programmatic' : 'user',
    source: 'attribute',
  });
});
observer.observe(el, {attributes: true, attributeFilter: ['value']});
return true;
"""

DRAIN_CHANGES = """
const key = arguments[0];
const queue = (window.__ctlFillChanges || {})[key];
if (!queue) {
  return [];
}
return queue.splice(0, queue.length);
"""
