"""
GraphQL SDL exported as a Python string named type_defs.
Resolvers are bound in tsukumart.api.resolvers; field and argument names are
converted to snake_case when the executable schema is built.
"""

type_defs = """
schema {
  query: Query
  mutation: Mutation
}

"Epoch milliseconds"
scalar DateTime

"data:<mime type>;base64,<data>"
scalar DataURL

scalar URL

enum AccountService {
  line
}

enum Condition {
  new
  likeNew
  veryGood
  good
  acceptable
  junk
}

enum CategoryGroup {
  furniture
  appliance
  fashion
  book
  vehicle
  food
  hobby
}

enum Category {
  furnitureTable
  furnitureChair
  furnitureChest
  furnitureBed
  furnitureKitchen
  furnitureCurtain
  furnitureMat
  furnitureOther
  applianceRefrigerator
  applianceMicrowave
  applianceWashing
  applianceVacuum
  applianceTemperature
  applianceHumidity
  applianceLight
  applianceTv
  applianceSpeaker
  applianceSmartphone
  appliancePc
  applianceCommunication
  applianceOther
  fashionMens
  fashionLadies
  fashionOther
  bookTextbook
  bookBook
  bookComic
  bookOther
  vehicleBicycle
  vehicleBike
  vehicleCar
  vehicleOther
  foodFood
  foodBeverage
  foodOther
  hobbyDisc
  hobbyInstrument
  hobbyCamera
  hobbyGame
  hobbySport
  hobbyArt
  hobbyAccessory
  hobbyDaily
  hobbyHandmade
  hobbyOther
}

enum ProductStatus {
  selling
  trading
  soldOut
}

enum TradeStatus {
  inProgress
  waitSellerFinish
  waitBuyerFinish
  finish
  cancelBySeller
  cancelByBuyer
}

enum SellerOrBuyer {
  seller
  buyer
}

enum School {
  humcul
  socint
  human
  life
  sse
  info
  med
  aandd
  sport
}

enum Department {
  humanity
  culture
  japanese
  social
  cis
  education
  psyche
  disability
  biol
  bres
  earth
  math
  phys
  chem
  coens
  esys
  pandps
  coins
  mast
  klis
  med
  nurse
  ms
  aandd
  sport
}

enum Graduate {
  education
  hass
  gabs
  pas
  sie
  life
  chs
  slis
  global
}

"Undergraduate: department only. Graduate here: both. Graduate from elsewhere: graduate only."
type University {
  schoolAndDepartment: Department
  graduate: Graduate
}

input UniversityInput {
  schoolAndDepartment: Department
  graduate: Graduate
}

"Name and image of a user as they were when the record was written"
type UserSummary {
  id: ID!
  displayName: String!
  imageId: String!
}

type User {
  id: ID!
  displayName: String!
  imageId: String!
  introduction: String!
  university: University!
  createdAt: DateTime!
  soldProducts: [Product!]!
}

type UserPrivate {
  id: ID!
  displayName: String!
  imageId: String!
  introduction: String!
  university: University!
  createdAt: DateTime!
  soldProducts: [Product!]!
  emailAddress: String!
  hasNotifyToken: Boolean!
  likedProducts: [Product!]!
  historyViewProducts: [Product!]!
  commentedProducts: [Product!]!
  boughtProducts: [Product!]!
  trading: [Trade!]!
  traded: [Trade!]!
  drafts: [DraftProduct!]!
}

type ProductComment {
  commentId: ID!
  body: String!
  speaker: UserSummary!
  createdAt: DateTime!
}

type Product {
  id: ID!
  name: String!
  price: Int!
  description: String!
  condition: Condition!
  category: Category!
  thumbnailImageId: String!
  imageIds: [String!]!
  likedCount: Int!
  viewedCount: Int!
  status: ProductStatus!
  seller: UserSummary!
  comments: [ProductComment!]!
  createdAt: DateTime!
  updateAt: DateTime!
}

type DraftProduct {
  draftId: ID!
  name: String!
  price: Int
  description: String!
  condition: Condition
  category: Category
  thumbnailImageId: String
  imageIds: [String!]!
  createdAt: DateTime!
  updateAt: DateTime!
}

type TradeComment {
  commentId: ID!
  body: String!
  speaker: SellerOrBuyer!
  createdAt: DateTime!
}

type Trade {
  id: ID!
  product: Product!
  buyer: UserSummary!
  status: TradeStatus!
  comments: [TradeComment!]!
  createdAt: DateTime!
  updateAt: DateTime!
}

type Query {
  user(userId: ID!): User!
  userPrivate(accessToken: String!): UserPrivate!
  product(productId: ID!): Product!
  productSearch(
    query: String!
    category: Category
    categoryGroup: CategoryGroup
    condition: Condition
    school: School
    department: Department
    graduate: Graduate
  ): [Product!]!
  productAll: [Product!]!
  productRecentAll: [Product!]!
  productRecommendAll: [Product!]!
  productFreeAll: [Product!]!
  trade(accessToken: String!, tradeId: ID!): Trade!
}

type Mutation {
  getLogInUrl(service: AccountService!): URL!
  getLineNotifyUrl(accessToken: String!): URL!
  "Returns the token that confirms the email address"
  registerSignUpData(
    sendEmailToken: String!
    displayName: String!
    image: DataURL
    university: UniversityInput!
    email: String!
  ): String!
  updateProfile(
    accessToken: String!
    displayName: String!
    image: DataURL
    introduction: String!
    university: UniversityInput!
  ): UserPrivate!
  sellProduct(
    accessToken: String!
    name: String!
    price: Int!
    description: String!
    images: [DataURL!]!
    condition: Condition!
    category: Category!
  ): Product!
  markProductInHistory(accessToken: String!, productId: ID!): Product!
  likeProduct(accessToken: String!, productId: ID!): Boolean
  unlikeProduct(accessToken: String!, productId: ID!): Boolean
  addProductComment(accessToken: String!, productId: ID!, body: String!): Product!
  updateProduct(
    accessToken: String!
    productId: ID!
    name: String!
    price: Int!
    description: String!
    condition: Condition!
    category: Category!
    addImages: [DataURL!]!
    deleteImageIndex: [Int!]!
  ): Product!
  deleteProduct(accessToken: String!, productId: ID!): Boolean
  addDraftProduct(
    accessToken: String!
    name: String!
    price: Int
    description: String!
    condition: Condition
    category: Category
    images: [DataURL!]!
  ): DraftProduct!
  updateDraftProduct(
    accessToken: String!
    draftId: ID!
    name: String!
    price: Int
    description: String!
    condition: Condition
    category: Category
    deleteImageIndex: [Int!]!
    addImages: [DataURL!]!
  ): [DraftProduct!]!
  deleteDraftProduct(accessToken: String!, draftId: ID!): [DraftProduct!]!
  startTrade(accessToken: String!, productId: ID!): Trade!
  addTradeComment(accessToken: String!, tradeId: ID!, body: String!): Trade!
  cancelTrade(accessToken: String!, tradeId: ID!): Trade!
  finishTrade(accessToken: String!, tradeId: ID!): Trade!
}
"""
