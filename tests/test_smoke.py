from nodes.db import get_session
from nodes.models import Node

def test_create_node(db):
    s = get_session()
    node = Node(content="buy milk")
    s.add(node)
    s.commit()
    s.refresh(node)
    assert node.id is not None
    assert node.archived is False
    assert node.created == node.edited == node.viewed
    assert node.tags == []
    s.close()
