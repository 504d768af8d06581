"""
GraphQL query strings for Shopify Admin API.
"""


def build_export_bulk_query() -> str:
    """
    Build bulk operation query for exporting product prices.

    Products are selected before their variants so the result file lists
    each product line ahead of the variant lines that reference it.

    Returns:
        Inner query document for bulkOperationRunQuery
    """
    return '''
    {
      products {
        edges {
          node {
            id
            title
            variants {
              edges {
                node {
                  id
                  sku
                  selectedOptions {
                    name
                    value
                  }
                  price
                  compareAtPrice
                }
              }
            }
          }
        }
      }
    }
    '''


# Submit a bulk query; the inner document is passed as a variable
BULK_OPERATION_RUN_QUERY = '''
mutation bulkOperationRunQuery($query: String!) {
  bulkOperationRunQuery(query: $query) {
    bulkOperation {
      id
      status
    }
    userErrors {
      field
      message
    }
  }
}
'''

# Submit a bulk mutation against a staged variables file
BULK_OPERATION_RUN_MUTATION = '''
mutation bulkOperationRunMutation($mutation: String!, $stagedUploadPath: String!) {
  bulkOperationRunMutation(mutation: $mutation, stagedUploadPath: $stagedUploadPath) {
    bulkOperation {
      id
      status
    }
    userErrors {
      field
      message
    }
  }
}
'''

# Run once per staged line; each line carries productId and variants
PRODUCT_VARIANTS_BULK_UPDATE = '''
mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    productVariants {
      id
      price
      compareAtPrice
    }
    userErrors {
      field
      message
    }
  }
}
'''

BULK_OPERATION_CANCEL = '''
mutation bulkOperationCancel($id: ID!) {
  bulkOperationCancel(id: $id) {
    bulkOperation {
      id
      status
    }
    userErrors {
      field
      message
    }
  }
}
'''

# Query to poll bulk operation status by id
BULK_OPERATION_STATUS_QUERY = '''
query($id: ID!) {
  node(id: $id) {
    ... on BulkOperation {
      id
      type
      status
      errorCode
      objectCount
      url
      partialDataUrl
    }
  }
}
'''

# The shop's current bulk query operation
CURRENT_BULK_OPERATION_QUERY = '''
query {
  currentBulkOperation {
    id
    type
    status
    errorCode
    objectCount
    url
    partialDataUrl
  }
}
'''

# One page of the variant catalog for the import snapshot
PRODUCT_VARIANTS_PAGE_QUERY = '''
query getPriceData($first: Int!, $after: String) {
  productVariants(first: $first, after: $after) {
    pageInfo {
      hasNextPage
      endCursor
    }
    edges {
      node {
        id
        sku
        price
        compareAtPrice
        product {
          id
        }
      }
    }
  }
}
'''

STAGED_UPLOADS_CREATE = '''
mutation stagedUploadsCreate($input: [StagedUploadInput!]!) {
  stagedUploadsCreate(input: $input) {
    stagedTargets {
      url
      resourceUrl
      parameters {
        name
        value
      }
    }
    userErrors {
      field
      message
    }
  }
}
'''

ACTIVE_SUBSCRIPTIONS_QUERY = '''
query {
  currentAppInstallation {
    activeSubscriptions {
      id
      name
      status
      createdAt
    }
  }
}
'''
