# message_schema.py
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

PROTO_FILE = "memdb/message.proto"
PROTO_PACKAGE = "memdb"

# HeapOperation.Kind 枚举值
KIND_ALLOC = 0
KIND_DEALLOC = 1

_Field = descriptor_pb2.FieldDescriptorProto


def _add_field(message, name: str, number: int, field_type: int,
               type_name: str | None = None, repeated: bool = False):
    field = message.field.add(
        name=name,
        number=number,
        type=field_type,
        label=_Field.LABEL_REPEATED if repeated else _Field.LABEL_OPTIONAL,
    )
    if type_name is not None:
        field.type_name = type_name


def build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
    """构建与 message.proto 一致的文件描述符"""
    file_proto = descriptor_pb2.FileDescriptorProto(name=PROTO_FILE, package=PROTO_PACKAGE, syntax="proto3")

    heap_operation = file_proto.message_type.add(name="HeapOperation")
    kind = heap_operation.enum_type.add(name="Kind")
    kind.value.add(name="Alloc", number=KIND_ALLOC)
    kind.value.add(name="Dealloc", number=KIND_DEALLOC)
    _add_field(heap_operation, "kind", 1, _Field.TYPE_ENUM, type_name=".memdb.HeapOperation.Kind")
    _add_field(heap_operation, "micros_since_server_start", 2, _Field.TYPE_UINT64)
    _add_field(heap_operation, "address", 3, _Field.TYPE_UINT64)
    _add_field(heap_operation, "size", 4, _Field.TYPE_UINT64)
    _add_field(heap_operation, "thread_id", 5, _Field.TYPE_UINT64)
    _add_field(heap_operation, "backtrace", 6, _Field.TYPE_STRING)

    marker = file_proto.message_type.add(name="Marker")
    _add_field(marker, "name", 1, _Field.TYPE_STRING)
    _add_field(marker, "index", 2, _Field.TYPE_UINT64)
    _add_field(marker, "first_operation_seq_no", 3, _Field.TYPE_UINT64)

    update = file_proto.message_type.add(name="Update")
    _add_field(update, "heap_operations", 1, _Field.TYPE_MESSAGE,
               type_name=".memdb.HeapOperation", repeated=True)
    _add_field(update, "markers", 2, _Field.TYPE_MESSAGE, type_name=".memdb.Marker", repeated=True)
    _add_field(update, "end_of_file", 3, _Field.TYPE_BOOL)
    return file_proto


# 使用独立的描述符池，避免与其他同名 proto 冲突
_POOL = descriptor_pool.DescriptorPool()
_POOL.AddSerializedFile(build_file_descriptor().SerializeToString())

HeapOperationMessage = message_factory.GetMessageClass(_POOL.FindMessageTypeByName("memdb.HeapOperation"))
MarkerMessage = message_factory.GetMessageClass(_POOL.FindMessageTypeByName("memdb.Marker"))
UpdateMessage = message_factory.GetMessageClass(_POOL.FindMessageTypeByName("memdb.Update"))
