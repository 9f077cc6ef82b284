# Directory: tools
# Filename: generate_fsm_diagram.py

import os
import sys
from typing import Any, Dict, List

# --- Path Setup ---
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(SCRIPT_DIR)
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


def _guard_names(value: Any) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        value = [value]
    return [getattr(v, '__name__', str(v)).lstrip('_') for v in value]


def build_transition_label(transition_config: Dict[str, Any]) -> str:
    """
    Builds an edge label: the trigger name plus its guards, with 'unless'
    guards shown negated.
    """
    label = transition_config.get('trigger', 'unknown_trigger')
    guards = _guard_names(transition_config.get('conditions'))
    guards += [f"not {name}" for name in _guard_names(transition_config.get('unless'))]
    if guards:
        label += f"\n[{', '.join(guards)}]"
    return label


def build_graph_machine(transition_table: List[Dict[str, Any]], states: List[str], initial: str,
                        include_self_loops: bool = True):
    """Creates a label-only GraphMachine mirroring `transition_table`."""
    from transitions.extensions import GraphMachine

    machine = GraphMachine(
        states=states,
        initial=initial,
        auto_transitions=False,
        graph_engine='pygraphviz',
        send_event=True,
    )
    for config in transition_table:
        dest = config['dest']
        sources = config['source'] if isinstance(config['source'], list) else [config['source']]
        if sources == ['*']:
            sources = list(states)
        for src in sources:
            if not include_self_loops and src == dest:
                continue
            machine.add_transition(trigger=config['trigger'], source=src, dest=dest,
                                   label=build_transition_label(config)) # type: ignore
    return machine


def create_diagram(machine_instance, filename, title=""):
    """
    Generates a diagram from a machine instance.
    """
    print(f"Generating diagram: {filename}...")
    try:
        graph = machine_instance.get_graph(title=title)
        graph.draw(filename, prog='dot')
        print(f" -> '{filename}' saved successfully.")
    except (AttributeError, ImportError, OSError) as e:
        print("\n--- ERROR ---")
        print(f"Could not generate diagram '{filename}'.")
        print(f"Original error: {e}")
        print("Please ensure 'pygraphviz' is installed (`pip install pygraphviz`) and you have the Graphviz system package.")
        sys.exit(1)


# --- Main execution block ---
if __name__ == "__main__":
    os.environ['FSM_DIAGRAM_MODE'] = 'true'

    from controllers.node_fsm import SCREENS, TRANSITIONS

    DOCS_DIR = os.path.join(PROJECT_ROOT, 'docs')
    print(f"Ensuring output directory exists: {DOCS_DIR}")
    os.makedirs(DOCS_DIR, exist_ok=True)

    print("\nBuilding the full navigation diagram...")
    full_machine = build_graph_machine(TRANSITIONS, SCREENS, 'WELCOME')
    create_diagram(full_machine, os.path.join(DOCS_DIR, 'node_fsm_full_detail.png'),
                   title="Node Navigation FSM (with Guards)")

    print("\nBuilding the high-level navigation diagram...")
    high_level_machine = build_graph_machine(TRANSITIONS, SCREENS, 'WELCOME', include_self_loops=False)
    create_diagram(high_level_machine, os.path.join(DOCS_DIR, 'node_fsm_high_level.png'),
                   title="Node Navigation FSM (Screen Changes Only)")
