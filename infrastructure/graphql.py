"""GraphQL documents understood by ``beans graphql``."""

BEAN_FIELDS = """
fragment BeanFields on Bean {
  id
  slug
  path
  title
  body
  status
  type
  priority
  tags
  createdAt
  updatedAt
  etag
  parentId
  blockingIds
  blockedByIds
}
"""

LIST_BEANS_QUERY = (
    BEAN_FIELDS
    + """
query ListBeans($filter: BeanFilter) {
  beans(filter: $filter) {
    ...BeanFields
  }
}
"""
)

SHOW_BEAN_QUERY = (
    BEAN_FIELDS
    + """
query ShowBean($id: ID!) {
  bean(id: $id) {
    ...BeanFields
  }
}
"""
)

CREATE_BEAN_MUTATION = (
    BEAN_FIELDS
    + """
mutation CreateBean($input: CreateBeanInput!) {
  createBean(input: $input) {
    ...BeanFields
  }
}
"""
)

UPDATE_BEAN_MUTATION = (
    BEAN_FIELDS
    + """
mutation UpdateBean($id: ID!, $input: UpdateBeanInput!) {
  updateBean(id: $id, input: $input) {
    ...BeanFields
  }
}
"""
)

DELETE_BEAN_MUTATION = """
mutation DeleteBean($id: ID!) {
  deleteBean(id: $id)
}
"""

__all__ = [
    "BEAN_FIELDS",
    "LIST_BEANS_QUERY",
    "SHOW_BEAN_QUERY",
    "CREATE_BEAN_MUTATION",
    "UPDATE_BEAN_MUTATION",
    "DELETE_BEAN_MUTATION",
]
