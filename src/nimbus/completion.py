"""Shell completion candidates for a partial command line.

Completion runs through click's shell completion; enable it for bash with
``eval "$(_NIMBUS_COMPLETE=bash_source nimbus)"``. Candidates for a line:

    nimbus            -> top-level categories and commands
    nimbus vm         -> children of vm
    nimbus vm li      -> children of vm starting with "li"
    nimbus vm list    -> long options of vm list
"""

from nimbus.tree import CommandTree


def complete(tree: CommandTree, line: str) -> list[str]:
    words = [word for word in line.strip().split(" ") if word]
    words = words[1:]  # program name

    node = tree.root
    while True:
        if not words:
            return list(node.categories) + list(node.commands)

        word = words.pop(0)
        if word in node.categories:
            node = tree.promote(node.categories[word])
            continue
        if words:
            return []

        command = node.commands.get(word)
        if command is not None:
            return [spec.long for spec in command.scope() if spec.long]

        candidates = [name for name in node.commands if name != word and name.startswith(word)]
        candidates += [name for name in node.categories if name != word and name.startswith(word)]
        return candidates
