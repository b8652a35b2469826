"""Force simulation modelled on d3-force.

Nodes are plain objects exposing mutable ``x``, ``y``, ``vx``, ``vy`` and an
``index`` the simulation assigns. The simulation never spawns a timer: the
host calls :meth:`ForceSimulation.step` once per animation frame (or
:meth:`ForceSimulation.run` to settle headlessly).

Example
-------
>>> sim = force_simulation(nodes).velocity_decay(0.2)
>>> sim.force("x", force_x(500).strength(0.03))
>>> sim.force("charge", force_many_body().strength(lambda n, *_: -n.radius ** 2 * 0.03))
>>> sim.on("tick", redraw).alpha(1).restart().run()
"""
import logging
import math
import random

logger = logging.getLogger(__name__)

_INITIAL_RADIUS = 10.0
_INITIAL_ANGLE = math.pi * (3 - math.sqrt(5))
_EVENTS = ("tick", "end")


def _constant(value):
    return lambda *_: value


def _accessor(value):
    return value if callable(value) else _constant(float(value))


def _jiggle(random_source):
    return (random_source.random() - 0.5) * 1e-6


class _Positional:
    """Shared body of ForceX / ForceY: pull each node toward a per-node target."""

    _axis = None

    def __init__(self, target=0.0, strength=0.1):
        self._target = _accessor(target)
        self._strength = _accessor(strength)
        self._nodes = []
        self._targets = []
        self._strengths = []

    def _initialize(self):
        nodes = self._nodes
        self._targets = [float(self._target(node, i, nodes)) for i, node in enumerate(nodes)]
        self._strengths = [
            0.0 if math.isnan(t) else float(self._strength(node, i, nodes))
            for i, (node, t) in enumerate(zip(nodes, self._targets))
        ]

    def initialize(self, nodes, random_source=None):
        self._nodes = nodes
        self._initialize()

    def strength(self, value=None):
        if value is None:
            return self._strength
        self._strength = _accessor(value)
        self._initialize()
        return self

    def __call__(self, alpha):
        pos, vel = self._axis, "v" + self._axis
        for node, target, k in zip(self._nodes, self._targets, self._strengths):
            setattr(node, vel, getattr(node, vel) + (target - getattr(node, pos)) * k * alpha)


class ForceX(_Positional):
    _axis = "x"

    def x(self, value=None):
        if value is None:
            return self._target
        self._target = _accessor(value)
        self._initialize()
        return self


class ForceY(_Positional):
    _axis = "y"

    def y(self, value=None):
        if value is None:
            return self._target
        self._target = _accessor(value)
        self._initialize()
        return self


class _Quad:
    __slots__ = ("children", "points", "x", "y", "value", "size")

    def __init__(self, size):
        self.children = None
        self.points = None
        self.x = 0.0
        self.y = 0.0
        self.value = 0.0
        self.size = size


def _build_quad(points, x0, y0, size, strengths):
    """Recursively split ``points`` into quadrants and accumulate charge.

    Internal quads carry the charge-weighted centroid of their children,
    leaves the position of their (possibly coincident) points.
    """
    quad = _Quad(size)
    first = points[0]
    if len(points) == 1 or all(p.x == first.x and p.y == first.y for p in points):
        quad.points = points
        quad.x = first.x
        quad.y = first.y
        quad.value = sum(strengths[p.index] for p in points)
        return quad

    half = size / 2.0
    xm, ym = x0 + half, y0 + half
    buckets = ([], [], [], [])
    for p in points:
        buckets[(p.x >= xm) | ((p.y >= ym) << 1)].append(p)

    quad.children = []
    weight = x = y = strength = 0.0
    for i, bucket in enumerate(buckets):
        if not bucket:
            continue
        child = _build_quad(
            bucket, xm if i & 1 else x0, ym if i & 2 else y0, half, strengths
        )
        quad.children.append(child)
        c = abs(child.value)
        if c:
            strength += child.value
            weight += c
            x += c * child.x
            y += c * child.y
    if weight:
        quad.x = x / weight
        quad.y = y / weight
    quad.value = strength
    return quad


class ForceManyBody:
    """N-body charge with the Barnes-Hut approximation.

    Negative strengths repel. ``theta(0)`` never approximates, so every pair
    is summed exactly.
    """

    def __init__(self, strength=-30.0, theta=0.9, distance_min=1.0, distance_max=math.inf):
        self._strength = _accessor(strength)
        self._theta2 = theta * theta
        self._distance_min2 = distance_min * distance_min
        self._distance_max2 = distance_max * distance_max
        self._nodes = []
        self._strengths = []
        self._random = random.Random()

    def _initialize(self):
        nodes = self._nodes
        self._strengths = [float(self._strength(node, i, nodes)) for i, node in enumerate(nodes)]

    def initialize(self, nodes, random_source=None):
        self._nodes = nodes
        if random_source is not None:
            self._random = random_source
        self._initialize()

    def strength(self, value=None):
        if value is None:
            return self._strength
        self._strength = _accessor(value)
        self._initialize()
        return self

    def theta(self, value=None):
        if value is None:
            return math.sqrt(self._theta2)
        self._theta2 = float(value) ** 2
        return self

    def distance_min(self, value=None):
        if value is None:
            return math.sqrt(self._distance_min2)
        self._distance_min2 = float(value) ** 2
        return self

    def distance_max(self, value=None):
        if value is None:
            return math.sqrt(self._distance_max2)
        self._distance_max2 = float(value) ** 2
        return self

    def _tree(self):
        nodes = self._nodes
        x0 = min(n.x for n in nodes)
        y0 = min(n.y for n in nodes)
        size = max(max(n.x for n in nodes) - x0, max(n.y for n in nodes) - y0)
        # Half-open quadrant tests need the far edge strictly inside.
        size = size * (1 + 1e-9) + 1e-9
        return _build_quad(list(nodes), x0, y0, size, self._strengths)

    def __call__(self, alpha):
        if not self._nodes:
            return
        root = self._tree()
        for node in self._nodes:
            self._apply(root, node, alpha)

    def _apply(self, root, node, alpha):
        theta2 = self._theta2
        dmin2, dmax2 = self._distance_min2, self._distance_max2
        stack = [root]
        while stack:
            quad = stack.pop()
            if not quad.value:
                continue
            dx = quad.x - node.x
            dy = quad.y - node.y
            w = quad.size
            l = dx * dx + dy * dy

            # Far enough away to treat the whole quad as one body.
            if theta2 and w * w / theta2 < l:
                if l < dmax2:
                    if dx == 0:
                        dx = _jiggle(self._random)
                        l += dx * dx
                    if dy == 0:
                        dy = _jiggle(self._random)
                        l += dy * dy
                    if l < dmin2:
                        l = math.sqrt(dmin2 * l)
                    node.vx += dx * quad.value * alpha / l
                    node.vy += dy * quad.value * alpha / l
                continue

            if quad.children is not None:
                stack.extend(quad.children)
                continue
            if l >= dmax2:
                continue

            if quad.points[0] is not node or len(quad.points) > 1:
                if dx == 0:
                    dx = _jiggle(self._random)
                    l += dx * dx
                if dy == 0:
                    dy = _jiggle(self._random)
                    l += dy * dy
                if l < dmin2:
                    l = math.sqrt(dmin2 * l)
            for other in quad.points:
                if other is not node:
                    k = self._strengths[other.index] * alpha / l
                    node.vx += dx * k
                    node.vy += dy * k


class ForceSimulation:
    def __init__(self, nodes=None, random_source=None):
        self._nodes = []
        self._alpha = 1.0
        self._alpha_min = 0.001
        self._alpha_decay = 1 - math.pow(self._alpha_min, 1 / 300)
        self._alpha_target = 0.0
        self._velocity_decay = 0.6
        self._forces = {}
        self._listeners = {name: {} for name in _EVENTS}
        self._running = False
        self.random = random_source or random.Random()
        if nodes is not None:
            self.nodes(nodes)

    # ------------------------------------------------------------------
    # accessors
    def nodes(self, value=None):
        if value is None:
            return self._nodes
        self._nodes = list(value)
        self._initialize_nodes()
        for force in self._forces.values():
            force.initialize(self._nodes, self.random)
        return self

    def alpha(self, value=None):
        if value is None:
            return self._alpha
        self._alpha = min(1.0, max(0.0, float(value)))
        return self

    def alpha_min(self, value=None):
        if value is None:
            return self._alpha_min
        self._alpha_min = float(value)
        return self

    def alpha_decay(self, value=None):
        if value is None:
            return self._alpha_decay
        self._alpha_decay = float(value)
        return self

    def alpha_target(self, value=None):
        if value is None:
            return self._alpha_target
        self._alpha_target = float(value)
        return self

    def velocity_decay(self, value=None):
        """Fraction of velocity lost per tick (d3 default 0.4)."""
        if value is None:
            return 1 - self._velocity_decay
        self._velocity_decay = 1 - float(value)
        return self

    def force(self, name, force=None):
        if force is None:
            return self._forces.get(name)
        force.initialize(self._nodes, self.random)
        self._forces[name] = force
        return self

    def remove_force(self, name):
        self._forces.pop(name, None)
        return self

    def on(self, event, listener=None, name="default"):
        if event not in self._listeners:
            raise ValueError(f"Unknown simulation event {event!r}, expected one of {_EVENTS}")
        if listener is None:
            return self._listeners[event].get(name)
        self._listeners[event][name] = listener
        return self

    @property
    def running(self):
        return self._running

    # ------------------------------------------------------------------
    def _initialize_nodes(self):
        for i, node in enumerate(self._nodes):
            node.index = i
            x = getattr(node, "x", None)
            y = getattr(node, "y", None)
            if x is None or y is None or math.isnan(x) or math.isnan(y):
                radius = _INITIAL_RADIUS * math.sqrt(0.5 + i)
                angle = i * _INITIAL_ANGLE
                node.x = radius * math.cos(angle)
                node.y = radius * math.sin(angle)
            vx = getattr(node, "vx", None)
            vy = getattr(node, "vy", None)
            if vx is None or vy is None or math.isnan(vx) or math.isnan(vy):
                node.vx = node.vy = 0.0

    def _dispatch(self, event):
        for listener in list(self._listeners[event].values()):
            listener()

    def restart(self):
        if not self._running:
            logger.debug("Simulation restarted with %d nodes (alpha=%.3f)", len(self._nodes), self._alpha)
        self._running = True
        return self

    def stop(self):
        self._running = False
        return self

    def tick(self, iterations=1):
        """Advance ``iterations`` steps without dispatching events."""
        for _ in range(iterations):
            self._alpha += (self._alpha_target - self._alpha) * self._alpha_decay
            for force in self._forces.values():
                force(self._alpha)
            for node in self._nodes:
                node.vx *= self._velocity_decay
                node.x += node.vx
                node.vy *= self._velocity_decay
                node.y += node.vy
        return self

    def step(self):
        """Run one scheduled frame; returns whether the simulation keeps running."""
        if not self._running:
            return False
        self.tick()
        self._dispatch("tick")
        if self._alpha < self._alpha_min:
            self._running = False
            logger.debug("Simulation settled below alpha_min=%g", self._alpha_min)
            self._dispatch("end")
        return self._running

    def run(self, max_ticks=None):
        """Drive frames until the simulation stops or ``max_ticks`` frames have run."""
        frames = 0
        while self._running and (max_ticks is None or frames < max_ticks):
            self.step()
            frames += 1
        return frames

    def find(self, x, y, radius=None):
        """Return the node closest to (x, y), optionally within ``radius``."""
        best = None
        best_d2 = math.inf if radius is None else radius * radius
        for node in self._nodes:
            dx = x - node.x
            dy = y - node.y
            d2 = dx * dx + dy * dy
            if d2 < best_d2:
                best, best_d2 = node, d2
        return best


def force_simulation(nodes=None, random_source=None):
    return ForceSimulation(nodes, random_source)


def force_x(x=0.0):
    return ForceX(x)


def force_y(y=0.0):
    return ForceY(y)


def force_many_body():
    return ForceManyBody()
