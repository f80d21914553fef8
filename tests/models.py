from parselocal import ParseObject, User, Pointer


class Note(ParseObject):
    class_name = 'Note'
    expire_after = 60

    fields = {
        'title': str,
        'votes': int,
        'tag': str,
        'tags': list,
        'author': User,
    }


class Person(ParseObject):
    class_name = 'Person'
    expire_after = 60

    fields = {
        'name': str,
        'age': int,
    }


class Comment(ParseObject):
    class_name = 'Comment'
    expire_after = 60

    fields = {
        'text': str,
        'note': Note,
        'author': User,
    }


class Tag(ParseObject):
    """ Never cached """
    class_name = 'Tag'

    fields = {
        'name': str,
    }


def pointer_json(class_name, object_id):
    return Pointer(class_name, object_id).json


def make_notes(n):
    """ Notes n0000, n0001, ...: votes = i % 50 ; tag 'x' for odd, 'y' for even """
    return [
        {
            'objectId': 'n{:04d}'.format(i),
            'createdAt': '2016-01-15T10:00:00.000Z',
            'updatedAt': '2016-01-15T10:00:00.000Z',
            'title': 'Note #{}'.format(i),
            'votes': i % 50,
            'tag': 'x' if i % 2 else 'y',
            'author': pointer_json('_User', 'u{}'.format(i % 3)),
        }
        for i in range(n)
    ]
